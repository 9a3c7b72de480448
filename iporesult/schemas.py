from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BulkCheckRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    company_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("company_id", "companyId", "companyShareId"),
    )
    boids: list[str] = Field(..., min_length=1)
    usercaptcha: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("usercaptcha", "userCaptcha", "captcha"),
        description="Captcha answer; omit to use the cached form lookup",
    )


class AllotmentResult(CamelModel):
    model_config = ConfigDict(frozen=True)

    boid: str
    company_id: Optional[str] = None
    allotted: bool
    message: Optional[str] = None
    cached: Optional[bool] = None
    error: Optional[bool] = None


class CaptchaResponse(CamelModel):
    success: bool = True
    captcha_identifier: str
    captcha_url: str


class BulkCheckResponse(CamelModel):
    success: bool = True
    count: int
    results: list[AllotmentResult]


class CaptchaErrorResponse(CamelModel):
    success: bool = False
    captcha_error: bool = True
    message: str = "Invalid captcha"


class SingleCheckResponse(CamelModel):
    success: bool = True
    boid: str
    company_id: str
    allotted: bool
    message: Optional[str] = None
    cached: bool = False


class CompaniesResponse(CamelModel):
    success: bool = True
    count: int
    companies: list[dict[str, Any]]


class HealthResponse(CamelModel):
    success: bool = True
    message: str
