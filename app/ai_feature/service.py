"""Chat service: the entry point for store-owner questions.

Flow:
1. AIQueryPipeline turns the question into validated, tenant-scoped SQL
2. QueryExecutor runs it on the read-only connection
3. The chart spec (if any) becomes a chart configuration
4. Everything is returned together with the meta needed to switch chart type
"""

import logging
from typing import Any, Dict, List, Optional, Union

from app.ai_feature.chart_converter import convert_chart_type
from app.ai_feature.chart_spec import to_chart_config
from app.ai_feature.pipeline import AIQueryPipeline
from app.ai_feature.query_executor import QueryExecutor
from app.core.errors import ValidationError
from app.core.schemas import ChartMeta, ChartSpecSummary, ChartType, ChatResponse

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTIONS = (
    "What was my total revenue this month?",
    "What are my top 5 selling products?",
    "How many new customers did I get this week?",
    "What is my average order value?",
    "Show revenue trend for the last 30 days",
    "Which product categories perform best?",
)


class ChatService:
    def __init__(self, pipeline: AIQueryPipeline, executor: QueryExecutor):
        self.pipeline = pipeline
        self.executor = executor

    async def ask(self, store_id: str, question: str) -> ChatResponse:
        if not question or not question.strip():
            raise ValidationError("Question cannot be empty")

        logger.info(
            f"Chat service: processing question for store {store_id} "
            f"({len(question.strip())} chars)"
        )

        query = await self.pipeline.process_question(store_id, question)
        execution = await self.executor.execute(query)
        chart_config = to_chart_config(query.chart_spec, execution.rows)

        spec = query.chart_spec
        summary = None
        meta = None
        if spec is not None:
            summary = ChartSpecSummary(type=spec.type, title=spec.title)
            meta = ChartMeta(
                title=spec.title,
                data_key=spec.data_key,
                label_key=spec.label_key,
                x_label=spec.x_label,
                y_label=spec.y_label,
            )

        logger.info(
            f"Chat service: answered for store {store_id} "
            f"(rows={execution.row_count}, {execution.duration_ms:.1f}ms, "
            f"chart={chart_config is not None})"
        )

        return ChatResponse(
            answer=query.explanation,
            sql=query.sql,
            rows=execution.rows,
            row_count=execution.row_count,
            duration_ms=execution.duration_ms,
            chart_spec=summary,
            chart_config=chart_config,
            chart_meta=meta,
        )

    def get_suggestions(self) -> List[str]:
        return list(DEFAULT_SUGGESTIONS)

    def convert_chart(
        self,
        chart_config: Optional[Dict[str, Any]],
        rows: List[Dict[str, Any]],
        target_type: Union[ChartType, str],
        meta: ChartMeta,
    ) -> Optional[Dict[str, Any]]:
        return convert_chart_type(chart_config, rows, target_type, meta)
