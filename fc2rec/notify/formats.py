from pydantic import BaseModel, ConfigDict, Field


class NotificationFormat(BaseModel):
    enabled: bool | None = None
    title: str = ""
    message: str = ""
    priority: int = 0

    def apply_default(self, default: "NotificationFormat") -> "NotificationFormat":
        return NotificationFormat(
            enabled=self.enabled if self.enabled is not None else default.enabled,
            title=self.title or default.title,
            message=self.message or default.message,
            priority=self.priority or default.priority,
        )


class NotificationFormats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    config_reloaded: NotificationFormat = Field(alias="configReloaded", default_factory=NotificationFormat)
    login_failed: NotificationFormat = Field(alias="loginFailed", default_factory=NotificationFormat)
    panicked: NotificationFormat = Field(default_factory=NotificationFormat)
    idle: NotificationFormat = Field(default_factory=NotificationFormat)
    preparing_files: NotificationFormat = Field(alias="preparingFiles", default_factory=NotificationFormat)
    downloading: NotificationFormat = Field(default_factory=NotificationFormat)
    post_processing: NotificationFormat = Field(alias="postProcessing", default_factory=NotificationFormat)
    finished: NotificationFormat = Field(default_factory=NotificationFormat)
    error: NotificationFormat = Field(default_factory=NotificationFormat)
    canceled: NotificationFormat = Field(default_factory=NotificationFormat)
    update_available: NotificationFormat = Field(alias="updateAvailable", default_factory=NotificationFormat)

    def apply_defaults(self) -> "NotificationFormats":
        merged = {}
        for name in NotificationFormats.model_fields:
            merged[name] = getattr(self, name).apply_default(getattr(DEFAULT_NOTIFICATION_FORMATS, name))
        return NotificationFormats(**merged)


class NotifierConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    urls: list[str] = []
    include_title_in_message: bool = Field(alias="includeTitleInMessage", default=False)
    no_priority: bool = Field(alias="noPriority", default=False)
    notification_formats: NotificationFormats = Field(
        alias="notificationFormats",
        default_factory=NotificationFormats,
    )


DEFAULT_NOTIFICATION_FORMATS = NotificationFormats(
    config_reloaded=NotificationFormat(enabled=True, title="config reloaded", priority=10),
    login_failed=NotificationFormat(enabled=True, title="login failed", message="{Error}", priority=10),
    panicked=NotificationFormat(enabled=True, title="panicked", message="{Capture}", priority=10),
    idle=NotificationFormat(enabled=False, title="watching {ChannelID}"),
    preparing_files=NotificationFormat(enabled=False, title="preparing files for {MetaData.profile_data.name}"),
    downloading=NotificationFormat(
        enabled=True,
        title="{MetaData.profile_data.name} is streaming",
        message="{MetaData.channel_data.title}",
        priority=7,
    ),
    post_processing=NotificationFormat(
        enabled=False,
        title="post-processing {MetaData.profile_data.name}",
        message="{MetaData.channel_data.title}",
        priority=7,
    ),
    finished=NotificationFormat(
        enabled=True,
        title="{MetaData.profile_data.name} stream ended",
        message="{MetaData.channel_data.title}",
        priority=7,
    ),
    error=NotificationFormat(
        enabled=True,
        title="stream download of {ChannelID} failed",
        message="{Error}",
        priority=10,
    ),
    canceled=NotificationFormat(enabled=True, title="stream download of {ChannelID} canceled", priority=10),
    update_available=NotificationFormat(
        enabled=True,
        title="update available ({Version})",
        message="A new version ({Version}) of fc2rec is available. Please update.",
        priority=7,
    ),
)
