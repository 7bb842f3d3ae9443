from fastapi import APIRouter, Depends, Query

from app.api.v1.dependency import CurrentUser, verify_api_key
from app.api.v1.routers.vods import get_vod_service
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.stream import CreateStreamIn, IngestAuthIn, ListLiveStreamsOut
from app.api.v1.schemas.vod import CreateVodIn
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream.stream_models import IngestAuthResponse, StreamCreateParams, StreamResponse
from app.domain.vod.vod_domain import VodService
from app.domain.vod.vod_models import VodCreateResult

router = APIRouter(prefix="/streams", tags=["Streams"])

# Singleton instance
_stream_service = StreamService()


def get_stream_service() -> StreamService:
    """Get the singleton StreamService instance."""
    return _stream_service


@router.post("")
async def create_stream(
    body: CreateStreamIn,
    user: CurrentUser,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamResponse]:
    """Create an idle stream owned by the authenticated user."""
    params = StreamCreateParams(owner_id=user.user_id, **body.model_dump())
    result = await service.create_stream(params)
    return ApiOut[StreamResponse](data=result)


@router.get("/live")
async def list_live_streams(
    user: CurrentUser,
    service: StreamService = Depends(get_stream_service),
    cursor: str | None = Query(None, description="Pagination cursor"),
    page_size: int = Query(20, ge=1, le=100, description="Number of items per page"),
    category: str | None = Query(None),
) -> ApiOut[ListLiveStreamsOut]:
    """List public live streams, most recently started first."""
    result = await service.list_live_streams(cursor=cursor, page_size=page_size, category=category)
    return ApiOut[ListLiveStreamsOut](
        data=ListLiveStreamsOut(streams=result.streams, next_cursor=result.next_cursor)
    )


@router.post("/auth", tags=["Internal"])
async def authenticate_ingest(
    body: IngestAuthIn,
    _: None = Depends(verify_api_key),
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[IngestAuthResponse]:
    """Authenticate an RTMP publish attempt by stream key."""
    result = await service.authenticate_ingest(stream_key=body.stream_key)
    return ApiOut[IngestAuthResponse](data=result)


@router.get("/{stream_id}")
async def get_stream(
    stream_id: str,
    user: CurrentUser,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamResponse]:
    result = await service.get_stream(stream_id=stream_id, requester_id=user.user_id)
    return ApiOut[StreamResponse](data=result)


@router.post("/{stream_id}/start")
async def start_stream(
    stream_id: str,
    user: CurrentUser,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamResponse]:
    result = await service.start_stream(stream_id=stream_id, requester_id=user.user_id)
    return ApiOut[StreamResponse](data=result)


@router.post("/{stream_id}/end")
async def end_stream(
    stream_id: str,
    user: CurrentUser,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamResponse]:
    result = await service.end_stream(stream_id=stream_id, requester_id=user.user_id)
    return ApiOut[StreamResponse](data=result)


@router.post("/{stream_id}/regenerate-key")
async def regenerate_stream_key(
    stream_id: str,
    user: CurrentUser,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamResponse]:
    result = await service.regenerate_stream_key(stream_id=stream_id, requester_id=user.user_id)
    return ApiOut[StreamResponse](data=result)


@router.post("/{stream_id}/create-vod")
async def create_vod_from_stream(
    stream_id: str,
    user: CurrentUser,
    body: CreateVodIn | None = None,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[VodCreateResult]:
    """Convert an ended stream into a VOD. Returns the VOD and its job handle right away."""
    result = await service.create_vod_from_stream(
        stream_id=stream_id,
        requester_id=user.user_id,
        options=body.options if body else None,
        is_admin=user.is_admin,
    )
    return ApiOut[VodCreateResult](data=result)
