from pydantic import BaseModel
from typing import Optional


class SponsorRequest(BaseModel):
    userAddress: Optional[str] = None
    userAccessToken: Optional[str] = None
    functionName: Optional[str] = "increment"


class SponsorResponse(BaseModel):
    success: bool = True
    txHash: str
    message: str
    sponsored: bool = True
    serverWallet: Optional[str] = None
    userWallet: str
    realTransaction: bool = True
    privyTransactionId: Optional[str] = None


class ContractCountResponse(BaseModel):
    success: bool = True
    count: str


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str
