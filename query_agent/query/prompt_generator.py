"""
Generate prompts for natural-language query translation.
"""

import json
from typing import Optional

from query_agent.config import QuerySettings
from query_agent.schema.catalog import SchemaCatalog


class PromptGenerator:
    """
    Generates the system and user prompts for the text2sql model.

    The system prompt frames the task, lists the output fields and filter
    operators, embeds the schema description and a handful of few-shot
    examples serialized exactly as the model is expected to answer.
    """

    MAX_EXAMPLES = 5

    def __init__(self, catalog: SchemaCatalog, settings: Optional[QuerySettings] = None):
        """
        Initialize prompt generator.

        Args:
            catalog: Schema catalog providing the description and examples
            settings: Query limits quoted in the prompt
        """
        self.catalog = catalog
        self.settings = settings or QuerySettings()
        self._system_prompt: Optional[str] = None

    def generate_system_prompt(self) -> str:
        """
        Generate the system prompt. The text is built once and reused.

        Returns:
            System prompt string with rules, schema and examples
        """
        if self._system_prompt is None:
            self._system_prompt = self._build_system_prompt()
        return self._system_prompt

    def generate_user_prompt(self, utterance: str, context: Optional[str] = None) -> str:
        """Wrap the utterance, with optional conversation context for disambiguation."""
        prompt = ""
        if context and context.strip():
            prompt += f"对话上下文（用于消歧）：\n{context.strip()}\n\n"
        prompt += f"请将以下查询转换为 JSON 格式的结构化查询：\n\n{utterance}\n\n只返回 JSON，不要任何其他文字。"
        return prompt

    def _build_system_prompt(self) -> str:
        return f"""你是 Hrevolve HR 系统的数据查询助手。你的任务是将用户的自然语言查询转换为结构化的 JSON 查询对象。

## 规则
1. 只能生成针对 HR 数据的查询，包括员工、考勤、请假、薪资、部门等
2. 必须返回有效的 JSON 格式
3. 不要生成任何解释文字，只返回 JSON
4. 对于模糊的查询，选择最合理的解释
5. 日期参数使用特殊标记：@Today, @CurrentWeekStart, @CurrentMonthStart, @CurrentYear, @Now
6. 默认返回 {self.settings.default_result_rows} 条记录，最多 {self.settings.max_result_rows} 条

{self.catalog.prompt_description()}

## 输出格式
返回一个 JSON 对象，包含以下字段：
- operation: "Select" | "Insert" | "Update" | "Delete"
- targetEntity: 目标实体名称（如 "Employee", "AttendanceRecord"）
- selectFields: 要查询的字段列表（数组）
- filters: 过滤条件列表，每个条件包含 field, operator, value, logicalOperator（"AND" | "OR"，连接下一个条件；条件按从左到右依次组合，没有优先级）
- joins: JOIN 子句列表，每个包含 entity, on
- aggregation: 聚合类型（可选）: "Count", "Sum", "Avg", "Min", "Max", "CountDistinct"
- aggregationField: 聚合字段（当有聚合时必填）
- groupByFields: 分组字段列表（可选）
- orderBy: 排序列表，每个包含 field, descending
- limit: 返回行数限制
- updateValues: 更新/插入的值（用于 Insert/Update 操作）

## 过滤条件操作符
- Equal, NotEqual, GreaterThan, GreaterThanOrEqual, LessThan, LessThanOrEqual
- Contains, StartsWith, EndsWith
- In, NotIn, IsNull, IsNotNull, Between

{self._examples_section()}"""

    def _examples_section(self) -> str:
        examples = self.catalog.examples()[: self.MAX_EXAMPLES]
        if not examples:
            return ""
        lines = ["## 示例", ""]
        for example in examples:
            lines.append(f'输入: "{example.input}"')
            lines.append(f"输出: {json.dumps(example.expected_output.to_wire(), ensure_ascii=False)}")
            lines.append("")
        return "\n".join(lines)
