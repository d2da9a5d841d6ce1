from typing import Any

from pydantic import BaseModel, ConfigDict, Field

Number = int | float | str


class ApiObject(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)


class ChannelData(ApiObject):
    channel_id: str = Field(alias="channelid", default="")
    user_id: str = Field(alias="userid", default="")
    title: str = ""
    info: str = ""
    image: str = ""
    login_only: Number | None = None
    is_publish: int = 0
    version: str = ""
    count: Number | None = None
    start: Number | None = None


class ProfileData(ApiObject):
    user_id: str = Field(alias="userid", default="")
    fc2_id: str = Field(alias="fc2id", default="")
    name: str = ""
    info: str = ""
    icon: str = ""
    image: str = ""


class UserData(ApiObject):
    is_login: Number | None = None
    user_id: Number | None = Field(alias="userid", default=None)
    name: str = ""


class GetMetaData(ApiObject):
    channel_data: ChannelData = Field(default_factory=ChannelData)
    profile_data: ProfileData = Field(default_factory=ProfileData)
    user_data: UserData = Field(default_factory=UserData)


class GetMetaResponse(ApiObject):
    status: Number | None = None
    data: GetMetaData


class GetControlServerResponse(ApiObject):
    url: str
    orz: str = ""
    orz_raw: str = ""
    control_token: str
    status: Number | None = None


class ControlToken(ApiObject):
    channel_id: str | None = None
    user_id: str | None = None
    fc2_id: Any = None
    orz_token: Any = None
    mode: Any = None
    user_name: Any = None
    premium: Any = None
    exp: int | None = None


class ChannelListChannel(ApiObject):
    id: str
    count: float = 0
    login: str = ""


class GetChannelListResponse(ApiObject):
    channel: list[ChannelListChannel] = []


class WSResponse(BaseModel):
    name: str
    arguments: dict = {}
    id: int | None = None


class Comment(ApiObject):
    user_name: str = ""
    comment: str = ""
    timestamp: Number = 0
    encrypted_user_id: str = ""
    orz_token: str = ""
    hash: str = ""
    color: str = ""
    size: str = ""
    lang: str = ""
    anonymous: Number | None = None
    history: Number | None = None


class Playlist(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: int
    status: Number | None = None
    url: str


class HLSInformation(BaseModel):
    status: Number | None = None
    playlists: list[Playlist] = []
    playlists_high_latency: list[Playlist] = []
    playlists_middle_latency: list[Playlist] = []
