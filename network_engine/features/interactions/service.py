"""
Interaction ledger service - logs events and keeps derived contact state current.
"""

from dataclasses import dataclass
from typing import Any

from network_engine.domain.models import Interaction
from network_engine.domain.requests import InteractionCreate, parse_request
from network_engine.domain.types import INTERACTION_POINTS
from network_engine.errors import NotFoundError
from network_engine.features.contacts.repository import ContactRepository
from network_engine.features.scoring.config import EngineConfig
from network_engine.features.scoring.service import ScoringService, scoring_service
from network_engine.features.transitions.service import (
    ACCEPTANCE_TYPE,
    TransitionResult,
    TransitionService,
    transition_service,
)
from network_engine.infrastructure.observability.logging import get_logger
from network_engine.utils.clock import local_today, utc_now

from .repository import InteractionRepository

logger = get_logger(__name__)


@dataclass(slots=True)
class LoggedInteraction:
    interaction: Interaction
    relationship_score: int
    transition: TransitionResult | None = None


class InteractionService:
    def __init__(
        self,
        contacts=ContactRepository,
        interactions=InteractionRepository,
        scoring: ScoringService = scoring_service,
        transitions: TransitionService = transition_service,
    ):
        self.contacts = contacts
        self.interactions = interactions
        self.scoring = scoring
        self.transitions = transitions

    async def log_interaction(
        self, data: InteractionCreate | dict[str, Any], config: EngineConfig | None = None
    ) -> LoggedInteraction:
        """
        Append an interaction, advance last_interaction_at and recompute the score.

        An acceptance logged against a ``requested`` contact moves it to
        ``connected`` in the same transaction without logging a second
        acceptance. Automated promotions are evaluated afterwards.
        """
        request = parse_request(InteractionCreate, data)
        config = config or await self.scoring.load_config()
        now = utc_now()
        occurred_at = request.occurred_at or now

        async with self.contacts.locked(request.contact_id) as conn:
            contact = await self.contacts.get_active(request.contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", request.contact_id)

            interaction = await self.interactions.insert(
                contact.id,
                request.type,
                request.source,
                occurred_at,
                INTERACTION_POINTS[request.type],
                request.metadata,
                connection=conn,
            )
            await self.contacts.touch_last_interaction(contact.id, occurred_at, connection=conn)

            transition = None
            if request.type == ACCEPTANCE_TYPE and contact.status == "requested":
                transition = await self.transitions.apply_transition(
                    contact,
                    "connected",
                    trigger="automated_promotion",
                    reason="Connection request accepted",
                    config=config,
                    connection=conn,
                    log_acceptance=False,
                    now=now,
                )
                score = transition.relationship_score
            else:
                score = await self.scoring.recalculate_relationship_score(
                    contact, config=config, as_of=now, connection=conn
                )
                transition = await self.transitions.evaluate_automated(
                    contact,
                    config=config,
                    connection=conn,
                    today=local_today(now),
                    include_demotion=False,
                )

        logger.info(
            "Interaction logged",
            contact_id=contact.id,
            interaction_type=request.type,
            points=interaction.points_value,
            relationship_score=score,
            transitioned_to=transition.to_status if transition else None,
        )
        return LoggedInteraction(
            interaction=interaction, relationship_score=score, transition=transition
        )


interaction_service = InteractionService()
