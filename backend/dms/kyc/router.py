import logging

from fastapi import APIRouter, Depends

from dms.auth.deps import require_merchant_access, require_perms
from dms.auth.rbac import KYC_VERIFY
from dms.auth.security import AccessClaims
from dms.kyc.providers import (
    AadhaarProvider,
    PanProvider,
    get_aadhaar_provider,
    get_pan_provider,
)
from dms.kyc.schemas import (
    AadhaarOtpInitRequest,
    AadhaarOtpInitResponse,
    AadhaarOtpVerifyRequest,
    AadhaarOtpVerifyResponse,
    PanVerifyRequest,
    PanVerifyResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_perms(KYC_VERIFY))])


@router.post("/{merchant_id}/pan/verify", response_model=PanVerifyResponse)
def verify_pan(
    merchant_id: str,
    payload: PanVerifyRequest,
    claims: AccessClaims = Depends(require_merchant_access),
    provider: PanProvider = Depends(get_pan_provider),
):
    result = provider.verify_pan(payload.pan, payload.name)
    logger.info(
        "PAN verification merchant_id=%s actor=%s status=%s ref=%s",
        merchant_id,
        claims.subject_id,
        result.status,
        result.ref_id,
    )
    return PanVerifyResponse(status=result.status, masked_pan=result.masked_pan, ref_id=result.ref_id)


@router.post("/{merchant_id}/aadhaar/otp/init", response_model=AadhaarOtpInitResponse)
def init_aadhaar_otp(
    merchant_id: str,
    payload: AadhaarOtpInitRequest,
    claims: AccessClaims = Depends(require_merchant_access),
    provider: AadhaarProvider = Depends(get_aadhaar_provider),
):
    result = provider.init_aadhaar_otp(payload.aadhaar_number)
    return AadhaarOtpInitResponse(txn_id=result.txn_id)


@router.post("/{merchant_id}/aadhaar/otp/verify", response_model=AadhaarOtpVerifyResponse)
def verify_aadhaar_otp(
    merchant_id: str,
    payload: AadhaarOtpVerifyRequest,
    claims: AccessClaims = Depends(require_merchant_access),
    provider: AadhaarProvider = Depends(get_aadhaar_provider),
):
    result = provider.verify_aadhaar_otp(payload.txn_id, payload.otp)
    logger.info(
        "Aadhaar verification merchant_id=%s actor=%s status=%s",
        merchant_id,
        claims.subject_id,
        result.status,
    )
    return AadhaarOtpVerifyResponse(status=result.status, last4=result.last4, ref_id=result.ref_id)
