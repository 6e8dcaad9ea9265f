# civicwatch/services/container.py
from dataclasses import dataclass
from typing import Optional, Sequence

from civicwatch.core.auth import AccessGate
from civicwatch.core.config import Settings
from civicwatch.services.accounts import AccountService
from civicwatch.services.area_registry import AreaRegistry
from civicwatch.services.audit import AuditTrail
from civicwatch.services.delivery import DeliveryChain, DeliveryProvider, LoggingDeliveryProvider
from civicwatch.services.messaging import MessagingSubsystem
from civicwatch.services.moderation import ModerationEngine
from civicwatch.services.notifications import NotificationEmitter
from civicwatch.services.uploads import LocalUploadService, UploadService


@dataclass
class Services:
    """Explicitly wired collaborators, stored on app.state and handed to routers."""

    gate: AccessGate
    accounts: AccountService
    areas: AreaRegistry
    moderation: ModerationEngine
    messaging: MessagingSubsystem
    audit: AuditTrail
    notifier: NotificationEmitter
    delivery: DeliveryChain
    uploads: UploadService


def build_services(
    settings: Settings,
    *,
    providers: Optional[Sequence[DeliveryProvider]] = None,
    uploads: Optional[UploadService] = None,
) -> Services:
    audit = AuditTrail()
    notifier = NotificationEmitter(audit)
    delivery = DeliveryChain(providers if providers is not None else [LoggingDeliveryProvider()])
    gate = AccessGate(settings.secret_key, settings.algorithm, settings.access_token_expire_minutes)
    areas = AreaRegistry(audit, max_attempts=settings.area_code_max_attempts)
    moderation = ModerationEngine(areas, audit, notifier)

    return Services(
        gate=gate,
        accounts=AccountService(gate, areas, audit, settings.superadmin_email),
        areas=areas,
        moderation=moderation,
        messaging=MessagingSubsystem(moderation, audit, notifier, delivery),
        audit=audit,
        notifier=notifier,
        delivery=delivery,
        uploads=uploads or LocalUploadService(settings.upload_dir, settings.upload_base_url),
    )
