from .formats import DEFAULT_NOTIFICATION_FORMATS, NotificationFormat, NotificationFormats, NotifierConfig
from .formatted import FormattedNotifier
from .notifier import BaseNotifier, DummyNotifier, MultiNotifier, WebhookNotifier, create_notifier
