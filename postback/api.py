import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .config import Settings, get_settings
from .logging_config import configure_logging
from .models import Click, TrackClickRequest, UserBalance
from .service import ClickTrackingError, InvalidPostbackError, PostbackService
from .store import DocumentExistsError, create_store

logger = logging.getLogger(__name__)

router = APIRouter()


def get_postback_service(request: Request) -> PostbackService:
    return request.app.state.postback_service


@router.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "cashback-postback"}


@router.get("/postback", response_class=PlainTextResponse, tags=["Postbacks"])
def receive_postback(request: Request, service: PostbackService = Depends(get_postback_service)):
    params = dict(request.query_params)
    try:
        result = service.process_postback(params)
    except InvalidPostbackError as e:
        logger.warning(f"[postback.rejected] {e} params={params}")
        return PlainTextResponse(str(e), status_code=status.HTTP_400_BAD_REQUEST)
    except Exception:
        logger.exception(f"[postback.error] click_id={params.get('click_id', '-')} order_id={params.get('order_id', '-')}")
        return PlainTextResponse(
            "Internal server error processing postback.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return PlainTextResponse(result.message, status_code=status.HTTP_200_OK)


@router.post("/clicks", response_model=Click, status_code=status.HTTP_201_CREATED, tags=["Clicks"])
def track_click(request: TrackClickRequest, service: PostbackService = Depends(get_postback_service)) -> Click:
    try:
        return service.track_click(request)
    except ClickTrackingError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DocumentExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Click {request.click_id} already recorded")


@router.get("/users/{user_id}/balance", response_model=UserBalance, tags=["Users"])
def get_user_balance(user_id: str, service: PostbackService = Depends(get_postback_service)) -> UserBalance:
    return service.get_balance(user_id)


def create_app(
    service: Optional[PostbackService] = None,
    settings: Optional[Settings] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or (service.settings if service else get_settings())
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Affiliate postback reconciliation: conversions, pending cashback transactions and balances",
        version=settings.version,
        root_path=root_path,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.postback_service = service or PostbackService(create_store(settings), settings)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
