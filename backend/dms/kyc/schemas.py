from pydantic import BaseModel, Field


class PanVerifyRequest(BaseModel):
    pan: str = Field(min_length=10, max_length=10)
    name: str = Field(min_length=2, max_length=255)


class PanVerifyResponse(BaseModel):
    status: str
    masked_pan: str
    ref_id: str


class AadhaarOtpInitRequest(BaseModel):
    aadhaar_number: str = Field(pattern=r"^[0-9]{12}$")


class AadhaarOtpInitResponse(BaseModel):
    txn_id: str


class AadhaarOtpVerifyRequest(BaseModel):
    txn_id: str = Field(min_length=1, max_length=64)
    otp: str = Field(min_length=6, max_length=6)


class AadhaarOtpVerifyResponse(BaseModel):
    status: str
    last4: str
    ref_id: str
