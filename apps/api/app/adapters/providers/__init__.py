"""Generation provider operation clients."""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings
from app.domain.operations import Capability

from .base import (
    LipSyncRequest,
    OperationClient,
    ProviderLimits,
    StitchRequest,
    SynthRequest,
)
from .mock import MockOperationClient
from .stitch import HttpStitchOperationClient
from .syncso import SyncSoOperationClient
from .veo import VEO_LIMITS, VeoOperationClient, VertexAccessTokenProvider


@dataclass(slots=True)
class ProviderSet:
    synth: OperationClient
    lipsync: OperationClient
    stitch: OperationClient | None = None

    def for_capability(self, capability: Capability) -> OperationClient | None:
        if capability is Capability.SYNTH:
            return self.synth
        if capability is Capability.LIPSYNC:
            return self.lipsync
        return self.stitch

    async def aclose(self) -> None:
        for client in (self.synth, self.lipsync, self.stitch):
            if client is not None:
                await client.aclose()


def build_providers(settings: Settings) -> ProviderSet:
    """Resolve operation clients from configuration."""
    if settings.synth_provider == "veo":
        if not settings.vertex_project_id:
            raise ValueError("CADENCE_VERTEX_PROJECT_ID is required for the veo synth provider")
        token_provider = (
            VertexAccessTokenProvider(settings.vertex_service_account_json)
            if settings.vertex_service_account_json
            else None
        )
        synth: OperationClient = VeoOperationClient(
            project_id=settings.vertex_project_id,
            location=settings.vertex_location,
            model_id=settings.vertex_model_id,
            token_provider=token_provider,
            timeout_seconds=settings.provider_timeout_seconds,
        )
    else:
        synth = MockOperationClient(Capability.SYNTH, limits=VEO_LIMITS)

    if settings.lipsync_provider == "syncso":
        if not settings.syncso_api_key:
            raise ValueError("CADENCE_SYNCSO_API_KEY is required for the syncso lipsync provider")
        lipsync: OperationClient = SyncSoOperationClient(
            api_key=settings.syncso_api_key,
            base_url=settings.syncso_base_url,
            model=settings.syncso_model,
            timeout_seconds=settings.provider_timeout_seconds,
        )
    else:
        lipsync = MockOperationClient(Capability.LIPSYNC)

    stitch: OperationClient | None = None
    if settings.stitch_provider == "http":
        if not settings.stitch_base_url:
            raise ValueError("CADENCE_STITCH_BASE_URL is required for the http stitch provider")
        stitch = HttpStitchOperationClient(
            base_url=settings.stitch_base_url,
            api_key=settings.stitch_api_key,
            timeout_seconds=settings.provider_timeout_seconds,
        )
    elif settings.stitch_provider == "mock":
        stitch = MockOperationClient(Capability.STITCH)

    return ProviderSet(synth=synth, lipsync=lipsync, stitch=stitch)


__all__ = [
    "HttpStitchOperationClient",
    "LipSyncRequest",
    "MockOperationClient",
    "OperationClient",
    "ProviderLimits",
    "ProviderSet",
    "StitchRequest",
    "SyncSoOperationClient",
    "SynthRequest",
    "VeoOperationClient",
    "build_providers",
]
