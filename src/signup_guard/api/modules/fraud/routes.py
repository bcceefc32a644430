from dishka import FromDishka
from dishka.integrations.fastapi import DishkaRoute
from fastapi import APIRouter, Query, Request, Response, status

from signup_guard.api.common.schema import Pagination
from signup_guard.api.modules.fraud.admin_service import FraudAdminService
from signup_guard.api.modules.fraud.schema import (
    INTERACTIVE_CHANNELS,
    AdminActionRequest,
    AttemptPaginationParams,
    DevicePaginationParams,
    DeviceResponse,
    EligibilityResult,
    EvaluateRequest,
    FraudAttemptResponse,
    FraudStatsResponse,
    LinkAccountRequest,
    LinkResult,
    NetworkPaginationParams,
    NetworkRecordResponse,
    PurgeResponse,
    ReviewRequest,
    RiskAssessment,
)
from signup_guard.api.modules.fraud.service import FraudFacadeService

router = APIRouter(route_class=DishkaRoute)


@router.post("/evaluate", response_model=RiskAssessment, status_code=200)
async def evaluate_attempt(
    request: Request,
    response: Response,
    payload: EvaluateRequest,
    facade: FromDishka[FraudFacadeService],
) -> RiskAssessment:
    assessment = await facade.evaluate_request(request=request, payload=payload)
    # OAuth callbacks render the refusal themselves
    if assessment.should_block and payload.context.channel not in INTERACTIVE_CHANNELS:
        response.status_code = status.HTTP_403_FORBIDDEN
    return assessment


@router.get(
    "/eligibility/{fingerprint}",
    response_model=EligibilityResult,
    status_code=200,
)
async def check_eligibility(
    fingerprint: str,
    facade: FromDishka[FraudFacadeService],
    account_id: str | None = Query(default=None, max_length=128),
) -> EligibilityResult:
    return await facade.check_eligibility(fingerprint, account_id=account_id)


@router.post("/link", response_model=LinkResult, status_code=200)
async def link_account(
    payload: LinkAccountRequest,
    response: Response,
    facade: FromDishka[FraudFacadeService],
) -> LinkResult:
    result = await facade.link_account(payload)
    if not result.linked:
        response.status_code = status.HTTP_409_CONFLICT
    return result


@router.get("/stats", response_model=FraudStatsResponse, status_code=200)
async def get_stats(admin: FromDishka[FraudAdminService]) -> FraudStatsResponse:
    return await admin.stats()


@router.get(
    "/devices",
    response_model=Pagination[DeviceResponse],
    status_code=200,
)
async def list_devices(
    admin: FromDishka[FraudAdminService],
    params: DevicePaginationParams = Query(),
) -> Pagination[DeviceResponse]:
    return await admin.list_devices(params)


@router.get("/devices/{fingerprint}", response_model=DeviceResponse, status_code=200)
async def get_device(
    fingerprint: str,
    admin: FromDishka[FraudAdminService],
) -> DeviceResponse:
    return await admin.get_device(fingerprint)


@router.post("/devices/{fingerprint}/flag", response_model=DeviceResponse)
async def flag_device(
    fingerprint: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> DeviceResponse:
    return await admin.flag_device(fingerprint, payload)


@router.post("/devices/{fingerprint}/unflag", response_model=DeviceResponse)
async def unflag_device(
    fingerprint: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> DeviceResponse:
    return await admin.unflag_device(fingerprint, payload)


@router.post("/devices/{fingerprint}/block", response_model=DeviceResponse)
async def block_device(
    fingerprint: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> DeviceResponse:
    return await admin.block_device(fingerprint, payload)


@router.post("/devices/{fingerprint}/unblock", response_model=DeviceResponse)
async def unblock_device(
    fingerprint: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> DeviceResponse:
    return await admin.unblock_device(fingerprint, payload)


@router.get(
    "/ips",
    response_model=Pagination[NetworkRecordResponse],
    status_code=200,
)
async def list_networks(
    admin: FromDishka[FraudAdminService],
    params: NetworkPaginationParams = Query(),
) -> Pagination[NetworkRecordResponse]:
    return await admin.list_networks(params)


@router.get("/ips/{ip_address}", response_model=NetworkRecordResponse, status_code=200)
async def get_network(
    ip_address: str,
    admin: FromDishka[FraudAdminService],
) -> NetworkRecordResponse:
    return await admin.get_network(ip_address)


@router.post("/ips/{ip_address}/whitelist", response_model=NetworkRecordResponse)
async def whitelist_network(
    ip_address: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> NetworkRecordResponse:
    return await admin.whitelist_network(ip_address, payload)


@router.post("/ips/{ip_address}/blacklist", response_model=NetworkRecordResponse)
async def blacklist_network(
    ip_address: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> NetworkRecordResponse:
    return await admin.blacklist_network(ip_address, payload)


@router.post("/ips/{ip_address}/monitor", response_model=NetworkRecordResponse)
async def monitor_network(
    ip_address: str,
    payload: AdminActionRequest,
    admin: FromDishka[FraudAdminService],
) -> NetworkRecordResponse:
    return await admin.monitor_network(ip_address, payload)


@router.get(
    "/attempts",
    response_model=Pagination[FraudAttemptResponse],
    status_code=200,
)
async def list_attempts(
    admin: FromDishka[FraudAdminService],
    params: AttemptPaginationParams = Query(),
) -> Pagination[FraudAttemptResponse]:
    return await admin.list_attempts(params)


@router.patch(
    "/attempts/{attempt_id}/review",
    response_model=FraudAttemptResponse,
    status_code=200,
)
async def review_attempt(
    attempt_id: int,
    payload: ReviewRequest,
    admin: FromDishka[FraudAdminService],
) -> FraudAttemptResponse:
    return await admin.review_attempt(attempt_id, payload)


@router.post("/maintenance/purge", response_model=PurgeResponse, status_code=200)
async def purge_expired(admin: FromDishka[FraudAdminService]) -> PurgeResponse:
    return await admin.purge_expired()
