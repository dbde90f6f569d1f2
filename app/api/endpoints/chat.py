from typing import Annotated
from fastapi import APIRouter, Depends, Request, status

from app.core import schemas, models
from app.core.security import get_current_store
from app.ai_feature.service import ChatService

router = APIRouter(prefix="/chat", tags=["Chat"])


# The service is assembled once in the app lifespan
def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


store_dep = Annotated[models.Store, Depends(get_current_store)]
service_dep = Annotated[ChatService, Depends(get_chat_service)]


@router.post(
    "/query", response_model=schemas.ChatResponse, status_code=status.HTTP_200_OK
)
async def ask_question(
    payload: schemas.ChatQueryRequest, store: store_dep, service: service_dep
):
    return await service.ask(str(store.id), payload.question)


@router.get("/suggestions", response_model=schemas.SuggestionsResponse)
async def get_suggestions(store: store_dep, service: service_dep):
    return {"suggestions": service.get_suggestions()}


@router.post("/chart/convert", response_model=schemas.ChartConvertResponse)
async def convert_chart(
    payload: schemas.ChartConvertRequest, store: store_dep, service: service_dep
):
    chart_config = service.convert_chart(
        payload.chart_config, payload.rows, payload.target_type, payload.meta
    )
    return {"chart_config": chart_config}
