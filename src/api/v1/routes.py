"""
API v1 routes.

Defines REST endpoints for referral-gated registration, OTP activation,
login and referral code management.

Handlers are plain ``def`` so FastAPI runs them in its worker threadpool;
the domain service, psycopg and bcrypt all block.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.api.dependencies import (
    get_current_user_id,
    get_origin_key,
    get_referral_ledger,
    get_registration_service,
)
from src.api.models import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileResponse,
    ReferralCreateRequest,
    ReferralCreateResponse,
    ReferralListResponse,
    ReferralResponse,
    ReferralStatsBody,
    ReferralStatsResponse,
    RegisterRequest,
    RegisterResponse,
    RequestOtpRequest,
    UserResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from src.domain.exceptions import (
    DuplicateResource,
    InvalidCredentials,
    NotActivated,
    RateLimited,
    ReferralNotFound,
    RegistrationError,
    TransientFailure,
)
from src.domain.models import RegistrationForm
from src.domain.referrals import ReferralLedger
from src.domain.registration import RegistrationService

router = APIRouter(tags=["v1"])

# Checked in order; anything else is a client error
_ERROR_STATUS = (
    (DuplicateResource, status.HTTP_409_CONFLICT),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS),
    (InvalidCredentials, status.HTTP_401_UNAUTHORIZED),
    (NotActivated, status.HTTP_403_FORBIDDEN),
    (ReferralNotFound, status.HTTP_404_NOT_FOUND),
    (TransientFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _http_error(exc: RegistrationError) -> HTTPException:
    """Map a domain error to its HTTP status. Only the public message leaves."""
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid field, referral or captcha"},
        409: {"model": ErrorResponse, "description": "Account already exists"},
        429: {"model": ErrorResponse, "description": "Too many registrations"},
        503: {"model": ErrorResponse, "description": "Service temporarily unavailable"},
    },
    summary="Register a new user",
    description="Submit account details with a referral code. The account is created "
    "pending and a 6-digit activation code is emailed.",
)
def register(
    request_data: RegisterRequest,
    request: Request,
    origin_key: str | None = Depends(get_origin_key),
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse:
    """
    Register a pending user and send an activation code.

    - **referral_code**: Required, must be active, unexpired and not exhausted
    - **gstn**: 15-character GSTN with valid check character
    - **password**: 8-128 characters, mixed case, digit and special character
    """
    form = RegistrationForm(
        username=request_data.username,
        email=request_data.email,
        phone_number=request_data.phone_number,
        referral_code=request_data.referral_code,
        password=request_data.password,
        confirm_password=request_data.confirm_password,
        tax_id=request_data.gstn,
        first_name=request_data.first_name,
        last_name=request_data.last_name,
    )
    try:
        outcome = service.register(
            form,
            origin_key=origin_key,
            user_agent=request.headers.get("user-agent"),
            bot_token=request_data.captcha_token,
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegisterResponse(message=outcome.message, requires_otp=outcome.requires_otp)


@router.post(
    "/verify-otp",
    response_model=VerifyOtpResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or expired OTP"},
        429: {"model": ErrorResponse, "description": "Too many failed attempts"},
    },
    summary="Activate account with OTP",
)
def verify_otp(
    request_data: VerifyOtpRequest,
    origin_key: str | None = Depends(get_origin_key),
    service: RegistrationService = Depends(get_registration_service),
) -> VerifyOtpResponse:
    """
    Activate a pending account and open a session.

    - **otp**: 6-digit code from the activation email
    """
    try:
        outcome = service.verify_otp(
            request_data.email,
            request_data.otp,
            origin_key=origin_key,
            bot_token=request_data.captcha_token,
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return VerifyOtpResponse(
        message=outcome.message,
        token=outcome.token,
        user=UserResponse.model_validate(outcome.user),
    )


@router.post(
    "/request-otp",
    response_model=MessageResponse,
    responses={
        429: {"model": ErrorResponse, "description": "Too many OTP requests"},
        503: {"model": ErrorResponse, "description": "Email delivery failed"},
    },
    summary="Request a new activation code",
    description="Always answers with the same message whether or not the email is registered.",
)
def request_otp(
    request_data: RequestOtpRequest,
    origin_key: str | None = Depends(get_origin_key),
    service: RegistrationService = Depends(get_registration_service),
) -> MessageResponse:
    try:
        outcome = service.request_otp(
            request_data.email,
            origin_key=origin_key,
            bot_token=request_data.captcha_token,
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return MessageResponse(message=outcome.message)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        403: {"model": ErrorResponse, "description": "Account not activated"},
        429: {"model": ErrorResponse, "description": "Too many failed logins"},
    },
    summary="Log in with username and password",
)
def login(
    request_data: LoginRequest,
    origin_key: str | None = Depends(get_origin_key),
    service: RegistrationService = Depends(get_registration_service),
) -> LoginResponse:
    try:
        outcome = service.login(
            request_data.username, request_data.password, origin_key=origin_key
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return LoginResponse(user=UserResponse.model_validate(outcome.user), token=outcome.token)


@router.get(
    "/me",
    response_model=ProfileResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid token"}},
    summary="Current user profile",
)
def me(
    user_id: int = Depends(get_current_user_id),
    service: RegistrationService = Depends(get_registration_service),
) -> ProfileResponse:
    try:
        user = service.get_user(user_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return ProfileResponse(user=UserResponse.model_validate(user))


@router.post(
    "/referrals",
    response_model=ReferralCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid referral settings"},
        401: {"model": ErrorResponse, "description": "Missing or invalid token"},
    },
    summary="Issue a referral code",
)
def create_referral(
    request_data: ReferralCreateRequest,
    user_id: int = Depends(get_current_user_id),
    ledger: ReferralLedger = Depends(get_referral_ledger),
) -> ReferralCreateResponse:
    try:
        referral = ledger.create(
            user_id,
            max_uses=request_data.max_uses,
            expires_at=request_data.expires_at,
            allowed_domain=request_data.allowed_email_domain,
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return ReferralCreateResponse(
        message="Referral code created successfully",
        referral=ReferralResponse.model_validate(referral),
    )


@router.get(
    "/referrals/mine",
    response_model=ReferralListResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid token"}},
    summary="List referral codes issued by the current user",
)
def list_referrals(
    user_id: int = Depends(get_current_user_id),
    ledger: ReferralLedger = Depends(get_referral_ledger),
) -> ReferralListResponse:
    try:
        referrals = ledger.list_for_creator(user_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return ReferralListResponse(
        referrals=[ReferralResponse.model_validate(referral) for referral in referrals]
    )


@router.get(
    "/referrals/{code}/stats",
    response_model=ReferralStatsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid token"},
        404: {"model": ErrorResponse, "description": "Referral code not found"},
    },
    summary="Usage statistics for one of your referral codes",
)
def referral_stats(
    code: str,
    user_id: int = Depends(get_current_user_id),
    ledger: ReferralLedger = Depends(get_referral_ledger),
) -> ReferralStatsResponse:
    try:
        stats = ledger.usage_stats(code, user_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return ReferralStatsResponse(stats=ReferralStatsBody.model_validate(stats))


@router.patch(
    "/referrals/{code}/deactivate",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse, "description": "Referral code not found"}},
    summary="Deactivate one of your referral codes",
)
def deactivate_referral(
    code: str,
    user_id: int = Depends(get_current_user_id),
    ledger: ReferralLedger = Depends(get_referral_ledger),
) -> MessageResponse:
    try:
        ledger.deactivate(code, user_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return MessageResponse(message="Referral code deactivated")


@router.patch(
    "/referrals/{code}/activate",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse, "description": "Referral code not found"}},
    summary="Reactivate one of your referral codes",
)
def activate_referral(
    code: str,
    user_id: int = Depends(get_current_user_id),
    ledger: ReferralLedger = Depends(get_referral_ledger),
) -> MessageResponse:
    try:
        ledger.activate(code, user_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return MessageResponse(message="Referral code activated")
