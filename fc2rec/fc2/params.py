from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .quality import Latency, Quality, to_mode
from ..utils import parse_duration

DEFAULT_OUT_FORMAT = "{Date} {Title} ({ChannelName}).{Ext}"

DURATION_FIELDS = (
    "poll_quality_upgrade_interval_sec",
    "wait_poll_interval_sec",
    "cookies_refresh_duration_sec",
    "eligible_for_cleaning_age_sec",
)


class ParamsBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("quality", mode="before", check_fields=False)
    @classmethod
    def parse_quality(cls, value: Any) -> Any:
        if isinstance(value, str):
            quality = Quality.parse(value)
            if quality == Quality.UNKNOWN:
                raise ValueError(f"Unknown quality: {value}")
            return quality
        return value

    @field_validator("latency", mode="before", check_fields=False)
    @classmethod
    def parse_latency(cls, value: Any) -> Any:
        if isinstance(value, str):
            latency = Latency.parse(value)
            if latency == Latency.UNKNOWN:
                raise ValueError(f"Unknown latency: {value}")
            return latency
        return value

    @field_validator(*DURATION_FIELDS, mode="before", check_fields=False)
    @classmethod
    def parse_duration_field(cls, value: Any) -> Any:
        if value is None:
            return None
        return parse_duration(value)

    @field_serializer("quality", "latency", check_fields=False)
    def serialize_enum(self, value: Quality | Latency | None) -> str | None:
        if value is None:
            return None
        return str(value)


class Params(ParamsBase):
    quality: Quality = Quality.MBPS_3
    latency: Latency = Latency.MID
    packet_loss_max: int = Field(alias="packetLossMax", default=20)
    out_format: str = Field(alias="outFormat", default=DEFAULT_OUT_FORMAT)
    write_chat: bool = Field(alias="writeChat", default=False)
    write_info_json: bool = Field(alias="writeInfoJson", default=False)
    write_thumbnail: bool = Field(alias="writeThumbnail", default=False)
    wait_for_live: bool = Field(alias="waitForLive", default=True)
    wait_for_quality_max_tries: int = Field(alias="waitForQualityMaxTries", default=60, ge=1)
    allow_quality_upgrade: bool = Field(alias="allowQualityUpgrade", default=False)
    poll_quality_upgrade_interval_sec: float = Field(alias="pollQualityUpgradeInterval", default=10)
    wait_poll_interval_sec: float = Field(alias="waitPollInterval", default=5)
    cookies_file: str = Field(alias="cookiesFile", default="")
    cookies_refresh_duration_sec: float = Field(alias="cookiesRefreshDuration", default=24 * 3600)
    remux: bool = True
    remux_format: str = Field(alias="remuxFormat", default="mp4")
    concat: bool = True
    keep_intermediates: bool = Field(alias="keepIntermediates", default=False)
    scan_directory: str = Field(alias="scanDirectory", default="")
    eligible_for_cleaning_age_sec: float = Field(alias="eligibleForCleaningAge", default=48 * 3600)
    delete_corrupted: bool = Field(alias="deleteCorrupted", default=True)
    extract_audio: bool = Field(alias="extractAudio", default=False)
    labels: dict[str, str] = {}

    @property
    def expected_mode(self) -> int:
        return to_mode(self.quality, self.latency)


class OptionalParams(ParamsBase):
    quality: Quality | None = None
    latency: Latency | None = None
    packet_loss_max: int | None = Field(alias="packetLossMax", default=None)
    out_format: str | None = Field(alias="outFormat", default=None)
    write_chat: bool | None = Field(alias="writeChat", default=None)
    write_info_json: bool | None = Field(alias="writeInfoJson", default=None)
    write_thumbnail: bool | None = Field(alias="writeThumbnail", default=None)
    wait_for_live: bool | None = Field(alias="waitForLive", default=None)
    wait_for_quality_max_tries: int | None = Field(alias="waitForQualityMaxTries", default=None, ge=1)
    allow_quality_upgrade: bool | None = Field(alias="allowQualityUpgrade", default=None)
    poll_quality_upgrade_interval_sec: float | None = Field(alias="pollQualityUpgradeInterval", default=None)
    wait_poll_interval_sec: float | None = Field(alias="waitPollInterval", default=None)
    cookies_file: str | None = Field(alias="cookiesFile", default=None)
    cookies_refresh_duration_sec: float | None = Field(alias="cookiesRefreshDuration", default=None)
    remux: bool | None = None
    remux_format: str | None = Field(alias="remuxFormat", default=None)
    concat: bool | None = None
    keep_intermediates: bool | None = Field(alias="keepIntermediates", default=None)
    scan_directory: str | None = Field(alias="scanDirectory", default=None)
    eligible_for_cleaning_age_sec: float | None = Field(alias="eligibleForCleaningAge", default=None)
    delete_corrupted: bool | None = Field(alias="deleteCorrupted", default=None)
    extract_audio: bool | None = Field(alias="extractAudio", default=None)
    labels: dict[str, str] | None = None

    def override(self, params: Params) -> Params:
        """Return a copy of ``params`` with every field set here replaced. Labels are merged."""
        update = {}
        for name in OptionalParams.model_fields:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "labels":
                value = {**params.labels, **value}
            update[name] = value
        return params.model_copy(update=update, deep=True)
