from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(default="", validation_alias=AliasChoices("email", "Email"))
    login: str = Field(default="", validation_alias=AliasChoices("login", "Login"))
    password: str = Field(default="", validation_alias=AliasChoices("password", "Password"))


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    login_or_email: str = Field(
        default="",
        validation_alias=AliasChoices("loginOrEmail", "LoginOrEmail", "login_or_email"),
    )
    password: str = Field(default="", validation_alias=AliasChoices("password", "Password"))


class MessageResponse(BaseModel):
    ok: bool = True
    message: str


class LoginResponse(MessageResponse):
    username: str


class ValidateResponse(MessageResponse):
    username: str
    role: str
