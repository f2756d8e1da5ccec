"""Coach access grants for ingested chunks."""

from src.utils.logging import get_logger

from .exceptions import IngestionValidationError
from .schemas import CoachAccess, CoachAccessGrant, CoachAccessResult
from .storage_service import StorageService

logger = get_logger(__name__)


class CoachAccessService:
    """Creates, replaces and reads per-coach tiered grants on chunks."""

    def __init__(self, storage_service: StorageService):
        self.storage_service = storage_service

    async def assign_access(
        self, chunk_ids: list[str], coach_access: list[CoachAccess]
    ) -> list[CoachAccessResult]:
        """Grant every coach access to every chunk at the coach's tier.

        Each coach is handled independently: a failed insert for one coach is
        logged and reported but never prevents the remaining coaches from
        being processed, and grants already created are kept.

        Args:
            chunk_ids: Ids of persisted chunks.
            coach_access: Requested (coach, tier) pairs. Must be non-empty.

        Returns:
            One result per requested coach, in request order.

        Raises:
            IngestionValidationError: If ``coach_access`` is empty.
        """
        if not coach_access:
            raise IngestionValidationError("At least one coach must be selected")

        results: list[CoachAccessResult] = []

        for access in coach_access:
            grants = [
                CoachAccessGrant(
                    chunk_id=chunk_id,
                    coach_id=access.coach_id,
                    access_tier=access.access_tier,
                )
                for chunk_id in chunk_ids
            ]

            try:
                created = await self.storage_service.insert_access_grants(grants)
            except Exception as e:
                logger.error(
                    "coach_access_failed",
                    coach_id=access.coach_id,
                    chunks=len(chunk_ids),
                    error_type=type(e).__name__,
                    error=str(e),
                )
                results.append(
                    CoachAccessResult(
                        coach_id=access.coach_id, success=False, error=str(e)
                    )
                )
                continue

            logger.info(
                "coach_access_created",
                coach_id=access.coach_id,
                access_tier=access.access_tier.value,
                grants=created,
            )
            results.append(CoachAccessResult(coach_id=access.coach_id, success=True))

        return results

    async def get_source_access(self, source_id: str) -> list[CoachAccess]:
        """Current grants of a source, collapsed to one entry per coach.

        When chunks of one source carry different tiers for the same coach
        (e.g. after a partial update), the highest tier is reported.
        """
        chunk_ids = await self.storage_service.get_chunk_ids(source_id)
        grants = await self.storage_service.list_access_grants(chunk_ids)

        by_coach: dict[str, CoachAccess] = {}
        for grant in grants:
            current = by_coach.get(grant.coach_id)
            if current is None or grant.access_tier.rank > current.access_tier.rank:
                by_coach[grant.coach_id] = CoachAccess(
                    coach_id=grant.coach_id, access_tier=grant.access_tier
                )

        return list(by_coach.values())

    async def replace_source_access(
        self, source_id: str, coach_access: list[CoachAccess]
    ) -> list[CoachAccessResult]:
        """Replace the full grant set of every chunk of a source.

        An empty ``coach_access`` removes all access to the source.
        """
        chunk_ids = await self.storage_service.get_chunk_ids(source_id)
        removed = await self.storage_service.delete_access_grants(chunk_ids)

        logger.info(
            "coach_access_cleared",
            source_id=source_id,
            chunks=len(chunk_ids),
            grants_removed=removed,
        )

        if not coach_access or not chunk_ids:
            return []

        return await self.assign_access(chunk_ids, coach_access)
