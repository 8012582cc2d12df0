from typing import Optional, Union

from pydantic import BaseModel


# Fields are optional so that missing values reach the validator and are
# reported in the same [{path, message}] shape as every other input error.
class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    code: Optional[Union[str, int]] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    password: Optional[str] = None
