"""Registration saga: create account, mail an OTP, activate on a verified code.

The staged profile lives only on the saga object. It is written to the
``users`` collection exactly once, by ``activate`` after the OTP for the
same email has been verified, and is dropped as soon as the saga reaches a
terminal state.
"""
import enum
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Union

import pydantic

from ..core.config import otp_lifetime
from ..core.errors import (
    AccountExists,
    DeliveryError,
    IdentityMismatch,
    InvalidTransition,
    OtpRejected,
    Unauthenticated,
    UnknownRegistration,
    ValidationError,
)
from ..core.security import hash_locker_secret
from ..schemas.registration import RegistrationForm, StagedRegistration, UserProfile
from .documents import USERS, DocumentStore
from .identity import IdentityProvider
from .otp_service import IssuedOtp, OtpService, OtpVerification, utcnow

logger = logging.getLogger(__name__)


class SagaState(enum.Enum):
    DRAFT = "draft"
    AWAITING_OTP = "awaiting_otp"
    ACTIVATED = "activated"
    ABANDONED = "abandoned"

    @property
    def terminal(self) -> bool:
        return self in (SagaState.ACTIVATED, SagaState.ABANDONED)


class RegistrationSaga:
    def __init__(
        self,
        otp: OtpService,
        identity: IdentityProvider,
        documents: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.otp = otp
        self.identity = identity
        self.documents = documents
        self.clock = clock

        self.state = SagaState.DRAFT
        self.staged: Optional[StagedRegistration] = None
        self.uid: Optional[str] = None
        self.email: Optional[str] = None
        self.session_token: Optional[str] = None
        self.expires_at: Optional[datetime] = None
        self.abandon_reason: Optional[str] = None

    async def submit(self, form: Union[RegistrationForm, dict]) -> IssuedOtp:
        """DRAFT -> AWAITING_OTP. Any failure after validation abandons the saga."""
        self._require(SagaState.DRAFT)
        form = self._validate(form)

        self.staged = StagedRegistration.from_form(form)
        self.email = self.staged.email
        try:
            self.staged.uid = self._create_or_adopt_account(self.staged)
            self.uid = self.staged.uid
            self.session_token = self.identity.open_session(self.staged.uid)
            issued = await self.otp.issue(self.staged.email)
        except Exception as e:
            self.abandon(getattr(e, "message", None) or "Registration failed")
            raise

        self.expires_at = issued.expires_at
        self.state = SagaState.AWAITING_OTP
        logger.info("Registration for %s awaiting OTP", self.email)
        return issued

    def activate(self, code: str, session_token: Optional[str]) -> UserProfile:
        """AWAITING_OTP -> ACTIVATED. The only place a UserProfile is written."""
        self._require(SagaState.AWAITING_OTP)

        session_uid = self.identity.session_uid(session_token)
        if session_uid is None:
            self.abandon(Unauthenticated.message)
            raise Unauthenticated()
        if session_uid != self.staged.uid:
            self.abandon(IdentityMismatch.message)
            raise IdentityMismatch()

        outcome = self.otp.verify(self.staged.email, code)
        if outcome is not OtpVerification.VERIFIED:
            logger.info("Activation for %s rejected: %s", self.email, outcome.value)
            raise OtpRejected(outcome)

        profile = UserProfile.from_staged(
            self.staged,
            locker_password_hash=hash_locker_secret(self.staged.locker_password),
            verified_at=self.clock(),
        )
        self.documents.set(USERS, self.staged.uid, profile.to_document())

        self.staged = None
        self.state = SagaState.ACTIVATED
        logger.info("Account %s activated", self.uid)
        return profile

    async def resend(self) -> IssuedOtp:
        """Re-issue the code. The countdown only moves when a new code was stored."""
        self._require(SagaState.AWAITING_OTP)
        try:
            issued = await self.otp.issue(self.staged.email)
        except DeliveryError as e:
            if e.expires_at is not None:
                self.expires_at = e.expires_at
            raise
        self.expires_at = issued.expires_at
        return issued

    def abandon(self, reason: str) -> None:
        if self.state.terminal:
            return
        self.staged = None
        self.session_token = None
        self.state = SagaState.ABANDONED
        self.abandon_reason = reason
        logger.warning("Registration for %s abandoned: %s", self.email, reason)

    def seconds_remaining(self, now: Optional[datetime] = None) -> int:
        if self.expires_at is None:
            return 0
        remaining = (self.expires_at - (now or self.clock())).total_seconds()
        return max(0, int(remaining))

    def _require(self, state: SagaState) -> None:
        if self.state is not state:
            raise InvalidTransition(f"Registration is {self.state.value}, expected {state.value}")

    def _create_or_adopt_account(self, staged: StagedRegistration) -> str:
        try:
            return self.identity.create_account(staged.email, staged.password)
        except AccountExists:
            # An earlier attempt may have created the account and then failed
            # before activation; take it over if the login secret matches.
            uid = self.identity.authenticate(staged.email, staged.password)
            if uid is None or self.documents.exists(USERS, uid):
                raise
            logger.info("Resuming registration for unactivated account %s", uid)
            return uid

    @staticmethod
    def _validate(form: Union[RegistrationForm, dict]) -> RegistrationForm:
        if isinstance(form, RegistrationForm):
            return form
        try:
            return RegistrationForm.model_validate(form)
        except pydantic.ValidationError as e:
            fields = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
            raise ValidationError("Invalid registration details", fields=fields) from e


class RegistrationFlows:
    """In-flight sagas keyed by an opaque flow id.

    Terminal sagas are dropped on release. A saga still awaiting its OTP
    longer than ``stale_after`` past the code's expiry is abandoned and
    dropped the next time a flow is added or looked up, so staged secrets
    do not outlive the registration attempt.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow, stale_after: Optional[timedelta] = None):
        self.clock = clock
        self.stale_after = otp_lifetime() if stale_after is None else stale_after
        self._flows: Dict[str, RegistrationSaga] = {}

    def add(self, saga: RegistrationSaga) -> str:
        self.prune()
        flow_id = secrets.token_urlsafe(24)
        self._flows[flow_id] = saga
        return flow_id

    def get(self, flow_id: str) -> RegistrationSaga:
        self.prune()
        saga = self._flows.get(flow_id)
        if saga is None:
            raise UnknownRegistration()
        return saga

    def release(self, flow_id: str) -> None:
        saga = self._flows.get(flow_id)
        if saga is not None and saga.state.terminal:
            del self._flows[flow_id]

    def prune(self) -> int:
        """Drop terminal and stale flows; returns how many were dropped."""
        cutoff = self.clock() - self.stale_after
        stale = [
            flow_id
            for flow_id, saga in self._flows.items()
            if saga.state.terminal or (saga.expires_at is not None and saga.expires_at < cutoff)
        ]
        for flow_id in stale:
            saga = self._flows.pop(flow_id)
            saga.abandon("Registration expired")
        if stale:
            logger.info("Dropped %d stale registration flows", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._flows)
