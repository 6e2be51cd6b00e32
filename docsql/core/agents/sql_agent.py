"""Tabular evidence: NL->SQL generation followed by sandboxed execution."""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from docsql.core.agents.evidence import (
    ClarificationRequest,
    NoEvidence,
    RetrievalResult,
    SandboxEvidence,
)
from docsql.core.constants import SOURCE_SANDBOX
from docsql.core.exceptions import ConnectivityError
from docsql.core.interfaces.routing import ConversationTurn, NLToSQLGenerator
from docsql.core.observability import describe_error
from docsql.core.sql_sandbox.executor import SandboxExecutor
from docsql.core.sql_sandbox.profiles import ProfileStore
from docsql.core.sql_sandbox.schema import SchemaIntrospector
from docsql.core.sql_sandbox.types import ConnectionProfile

logger = logging.getLogger(__name__)


class TabularEvidenceAgent:
    """Answers tabular questions against an owner's connected database.

    The generator only proposes SQL. Every statement still goes through the
    sandbox executor, which validates it, caps its rows and runs it read-only.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        schema_introspector: SchemaIntrospector,
        generator: NLToSQLGenerator,
        executor: SandboxExecutor,
    ):
        self._profiles = profile_store
        self._schema = schema_introspector
        self._generator = generator
        self._executor = executor

    def has_tables(self, owner_id: str) -> bool:
        return bool(self._profiles.list_profiles(owner_id))

    def run(
        self,
        utterance: str,
        owner_id: str,
        history: Optional[List[ConversationTurn]] = None,
        profile_id: Optional[str] = None,
    ) -> RetrievalResult:
        """Generate and run SQL for an utterance.

        Args:
            utterance: User message, with referents already resolved
            owner_id: Owner whose profiles may be used
            history: Recent conversation turns
            profile_id: Specific profile; defaults to the owner's oldest

        Returns:
            SandboxEvidence, ClarificationRequest or NoEvidence

        Raises:
            NotFoundError: If profile_id is given but not owned by owner_id
            DecryptionError: If the stored credentials cannot be decrypted
        """
        profile = self._select_profile(owner_id, profile_id)
        if profile is None:
            return NoEvidence(SOURCE_SANDBOX, "No database connected")

        try:
            schema = self._schema.get_schema_context(profile)
        except ConnectivityError as e:
            logger.warning(f"Schema introspection failed for profile {profile.id}: {e.message}")
            return NoEvidence(SOURCE_SANDBOX, e.message)
        except SQLAlchemyError as e:
            logger.warning(f"Schema introspection failed for profile {profile.id}: {describe_error(e)}")
            return NoEvidence(SOURCE_SANDBOX, "Schema introspection failed", degraded=True)

        if not schema.tables:
            return NoEvidence(SOURCE_SANDBOX, "Connected database has no tables")

        try:
            generated = self._generator.generate(utterance, schema, history or [])
        except Exception as e:
            logger.error(f"SQL generation failed for profile {profile.id}: {describe_error(e)}")
            return NoEvidence(SOURCE_SANDBOX, "SQL generation failed", degraded=True)
        if generated.needs_clarification or not generated.sql:
            question = generated.clarification_question or "Could you clarify which data you are asking about?"
            logger.info(f"SQL generation needs clarification for profile {profile.id}")
            return ClarificationRequest(question)

        execution = self._executor.execute_query(profile, generated.sql)
        if not execution.success:
            logger.info(f"Sandbox query failed for profile {profile.id}: {execution.error}")
            return NoEvidence(SOURCE_SANDBOX, execution.error or "Query failed")
        if execution.row_count == 0:
            return NoEvidence(SOURCE_SANDBOX, "Query returned no rows")

        return SandboxEvidence(profile_id=profile.id, generated=generated, execution=execution)

    def _select_profile(self, owner_id: str, profile_id: Optional[str]) -> Optional[ConnectionProfile]:
        if profile_id:
            return self._profiles.require_profile(owner_id, profile_id)
        profiles = self._profiles.list_profiles(owner_id)
        return profiles[0] if profiles else None
