"""Wiring of pipeline components from settings."""

import logging
from dataclasses import dataclass

from src.audit.logger import AuditLogger
from src.config.forms import DirectoryFormLoader, FormConfigCache
from src.config.settings import PipelineSettings
from src.enrichment.orchestrator import EnrichmentOrchestrator
from src.enrichment.providers import HttpEnrichmentProvider
from src.pipeline.intake import IntakeCoordinator
from src.pipeline.queue import InMemoryWorkQueue
from src.pipeline.store import FileSubmissionStore, SubmissionStore
from src.pipeline.worker import SubmissionWorker
from src.routing.dispatch import DispatchTarget, HttpDispatchTarget, TargetName
from src.security.stage import build_security_stage

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """The intake coordinator and worker sharing one store and queue."""

    settings: PipelineSettings
    forms: FormConfigCache
    store: SubmissionStore
    queue: InMemoryWorkQueue
    audit: AuditLogger
    coordinator: IntakeCoordinator
    worker: SubmissionWorker
    enrichment: EnrichmentOrchestrator

    def close(self) -> None:
        self.enrichment.close()


def build_dispatch_targets(settings: PipelineSettings) -> dict[str, DispatchTarget]:
    """Create HTTP targets for every configured downstream URL.

    A routed target with no URL is reported as a permanent dispatch error
    by the worker.
    """
    targets: dict[str, DispatchTarget] = {}
    for name, url in (
        (TargetName.CRM_SYNC.value, settings.crm_sync_url),
        (TargetName.PROVISIONING.value, settings.provisioning_url),
    ):
        if url:
            targets[name] = HttpDispatchTarget(name, url, settings.dispatch_api_key)
        else:
            logger.warning("No URL configured for dispatch target %s", name)
    return targets


def build_enrichment(settings: PipelineSettings) -> EnrichmentOrchestrator:
    providers = [
        HttpEnrichmentProvider(name, url, settings.enrichment_api_keys.get(name))
        for name, url in settings.enrichment_providers
    ]
    return EnrichmentOrchestrator(providers, timeout=settings.provider_timeout)


def build_pipeline(settings: PipelineSettings | None = None) -> Pipeline:
    """Build a file-backed pipeline.

    Args:
        settings: Pipeline settings. Defaults to ``PipelineSettings.from_env()``.

    Returns:
        Pipeline with a file store, an in-process queue and audit logging.
    """
    settings = settings or PipelineSettings.from_env()
    forms = FormConfigCache(DirectoryFormLoader(settings.forms_dir))
    store = FileSubmissionStore(settings.store_dir)
    queue = InMemoryWorkQueue(
        dedup_window_seconds=settings.dedup_window_seconds,
        visibility_timeout=settings.visibility_timeout,
    )
    audit = AuditLogger(settings.audit_dir)
    enrichment = build_enrichment(settings)

    coordinator = IntakeCoordinator(
        forms=forms,
        security=build_security_stage(turnstile_secret=settings.turnstile_secret_key),
        store=store,
        queue=queue,
        audit=audit,
    )
    worker = SubmissionWorker.from_settings(
        settings,
        forms=forms,
        store=store,
        queue=queue,
        enrichment=enrichment,
        targets=build_dispatch_targets(settings),
        audit=audit,
    )
    return Pipeline(
        settings=settings,
        forms=forms,
        store=store,
        queue=queue,
        audit=audit,
        coordinator=coordinator,
        worker=worker,
        enrichment=enrichment,
    )
