"""VersionResolver: picks the image version each image type runs with.

Version selection for an image type goes through these tiers, each one only
looking at the types the previous tiers left unresolved:

1. Rampup: the flow's bucket (1-100) selects an entry of the active rampup
   plan. Entries own consecutive bucket ranges, so a plan of 10/30/60 maps
   buckets 1-10, 11-40 and 41-100 to its three versions. A ramp rule that
   excludes the flow from the selected version sends it to the ACTIVE
   version instead.
2. Active: the latest ACTIVE version of the image type.
3. Non-active (metadata queries only): the latest version in any state.
4. Nothing: execution calls fail listing every such type; metadata calls
   report a "no version yet" entry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
)

from .. import config as rampup_config
from ..bucket import BUCKET_COUNT, flow_bucket
from ..catalog.interface import ImageTypeCatalog, ImageVersionCatalog, RampupPlanStore
from ..errors import (
    InvalidBucket,
    InvalidRampupPlan,
    RampRuleFallbackFailed,
    UnresolvedImageTypes,
    VersionNotFound,
)
from ..models import (
    FlowContext,
    ImageVersion,
    RampupEntry,
    ResolutionResult,
    Selection,
    State,
    VersionDecision,
    VersionInfo,
    VersionSet,
    normalize_type,
    normalize_types,
)
from ..rules.evaluator import RuleEvaluator
from .plan import match_bucket, order_plan, plans_by_type

logger = logging.getLogger(__name__)

NO_VERSION = VersionDecision(image_version=None, selection=Selection.NONE)


class VersionResolver:
    """Resolves image versions from rampup plans, ramp rules and the version catalog.

    Holds no state between calls; every collaborator is injected.

    Example:
        resolver = VersionResolver(catalog, catalog, catalog, RampRuleEvaluator(catalog))
        versions = resolver.resolve_all_for_execution(FlowContext("daily-etl", "reports"))
        versions["spark"].path
    """

    def __init__(
        self,
        type_catalog: ImageTypeCatalog,
        version_catalog: ImageVersionCatalog,
        rampup_store: RampupPlanStore,
        rule_evaluator: RuleEvaluator,
        bucket_fn: Callable[[FlowContext], int] = flow_bucket,
        plan_order: Optional[str] = None,
        registry: Optional[Any] = None,
    ):
        """Initialize VersionResolver.

        Args:
            type_catalog: Lists every registered image type
            version_catalog: Image version lookups
            rampup_store: Active rampup plans
            rule_evaluator: Ramp rule exclusion predicate
            bucket_fn: Maps a flow to its bucket in [1, 100]
            plan_order: Unsorted plan policy (uses config when None)
            registry: Optional ResolutionRegistry recording each call
        """
        self.type_catalog = type_catalog
        self.version_catalog = version_catalog
        self.rampup_store = rampup_store
        self.rule_evaluator = rule_evaluator
        self.bucket_fn = bucket_fn
        self.plan_order = plan_order or rampup_config.rampup_plan_order()
        self.registry = registry

    # --- public operations ---

    def resolve_all_for_execution(self, flow: FlowContext) -> Dict[str, VersionInfo]:
        """Resolve every known image type for an execution of `flow`.

        Raises:
            UnresolvedImageTypes: Some image types have neither a rampup
                match nor an ACTIVE version
        """
        with self._recorded("execution", flow) as outcome:
            image_types = self._all_image_types()
            plans = self.rampup_store.rampup_for_all_types()
            result = self.resolve(flow, image_types, plans=plans)
            outcome["result"] = result
            if result.unresolved:
                raise UnresolvedImageTypes(result.unresolved)
            return result.version_infos()

    def resolve_all_metadata(self) -> Dict[str, VersionDecision]:
        """Version decision for every image type, for reporting.

        Never raises: lookup failures are logged and image types without any
        version get the NO_VERSION entry.
        """
        with self._recorded("metadata", None) as outcome:
            try:
                image_types = self._all_image_types()
            except Exception as exc:
                logger.warning("Failed to list image types: %s", exc)
                return {}

            try:
                plans = self.rampup_store.rampup_for_all_types()
            except Exception as exc:
                logger.warning("Failed to fetch rampup plans: %s", exc)
                plans = {}

            result = self.resolve(None, image_types, include_non_active=True, plans=plans)
            outcome["result"] = result
            decisions = dict(result.decisions)
            for key in result.unresolved:
                decisions[key] = NO_VERSION
            return dict(sorted(decisions.items()))

    def resolve_subset(
        self,
        flow: Optional[FlowContext],
        image_types: Iterable[str],
        overlay_exempt_types: Iterable[str] = (),
    ) -> Dict[str, VersionInfo]:
        """Resolve the given image types for an execution of `flow`.

        Args:
            flow: Flow being executed
            image_types: Image types to resolve
            overlay_exempt_types: Types the caller pins itself; they may stay
                unresolved without failing the call

        Raises:
            UnresolvedImageTypes: A non-exempt type could not be resolved
        """
        with self._recorded("subset", flow) as outcome:
            return self._resolve_subset(flow, image_types, overlay_exempt_types, outcome)

    def reconcile(
        self, flow: Optional[FlowContext], version_set: VersionSet | Mapping[str, VersionInfo]
    ) -> Dict[str, VersionInfo]:
        """Re-validate pinned versions, re-resolving only the invalid ones.

        Returns:
            The pinned versions with every invalid entry replaced by a freshly
            resolved one
        """
        if isinstance(version_set, VersionSet):
            pinned = version_set.normalized()
        else:
            pinned = {normalize_type(name): info for name, info in version_set.items()}

        with self._recorded("reconcile", flow) as outcome:
            invalid = {
                key
                for key, info in pinned.items()
                if self.version_catalog.is_invalid_version(key, info.version)
            }
            merged = dict(pinned)
            if invalid:
                logger.info("Pinned versions invalid for image types %s, re-resolving", sorted(invalid))
                merged.update(self._resolve_subset(flow, invalid, (), outcome))
            return dict(sorted(merged.items()))

    def get_version_info(
        self,
        image_type: str,
        version: str,
        allowed_states: Optional[Iterable[State | str]] = None,
    ) -> VersionInfo:
        """Look up one exact version.

        Args:
            image_type: Image type name (any case)
            version: Version string
            allowed_states: Acceptable states; empty or None accepts any state

        Raises:
            VersionNotFound: Unknown pair, or its state is not allowed
        """
        image_version = self._exact_version(image_type, version)
        states = {State.parse(state) for state in allowed_states or ()}
        if states and image_version.state not in states:
            raise VersionNotFound(
                image_type,
                version,
                "state %s is not one of %s"
                % (image_version.state.value, ", ".join(sorted(s.value for s in states))),
            )
        return image_version.to_version_info()

    def resolve(
        self,
        flow: Optional[FlowContext],
        image_types: Iterable[str],
        include_non_active: bool = False,
        plans: Optional[Mapping[str, Sequence[RampupEntry]]] = None,
    ) -> ResolutionResult:
        """Run the tier composition for `image_types`.

        Args:
            flow: Flow being executed; None picks the first entry of each plan
            image_types: Image types to resolve (any case)
            include_non_active: Metadata chain. Enables the non-active tier
                and turns lookup failures into "no result"
            plans: Rampup plans to use (fetched for `image_types` when None)

        Returns:
            ResolutionResult keyed by normalized image type name
        """
        wanted = normalize_types(image_types)
        result = ResolutionResult(unresolved=set(wanted))
        if not wanted:
            return result

        tolerant = include_non_active
        if plans is None:
            plans = self._fetch(
                lambda: self.rampup_store.rampup_for_types(frozenset(wanted)),
                tolerant,
                {},
                "rampup plans",
            )
        relevant = plans_by_type(plans, wanted)

        self._rampup_tier(flow, relevant, result, tolerant)
        logger.info(
            "After processing rampup plans image types remaining: %s", sorted(result.unresolved)
        )

        self._active_tier(result, tolerant)
        logger.info(
            "After fetching ACTIVE versions image types remaining: %s", sorted(result.unresolved)
        )

        if include_non_active and result.unresolved:
            self._non_active_tier(result)
            logger.info(
                "After fetching non-ACTIVE versions image types remaining: %s",
                sorted(result.unresolved),
            )
        return result

    # --- tiers ---

    def _rampup_tier(
        self,
        flow: Optional[FlowContext],
        plans: Dict[str, List[RampupEntry]],
        result: ResolutionResult,
        tolerant: bool,
    ) -> None:
        if not plans:
            logger.info("No active rampup found for image types %s", sorted(result.unresolved))
            return
        logger.info("Found active rampup for image types %s", sorted(plans))

        if flow is not None:
            result.bucket = self._bucket(flow)
            logger.debug("Flow %s maps to bucket %d", flow.identity, result.bucket)

        excluded: Dict[str, RampupEntry] = {}
        walked: Dict[str, List[RampupEntry]] = {}
        for key in sorted(plans):
            try:
                plan = order_plan(key, plans[key], self.plan_order)
            except InvalidRampupPlan as exc:
                if not tolerant:
                    raise
                logger.warning("Skipping rampup plan: %s", exc)
                continue
            if not plan:
                logger.debug("Rampup plan for %s is empty", key)
                continue
            walked[key] = plan

            if flow is None:
                # Stored first entry, whatever the walk order
                entry = plans[key][0]
            else:
                entry = match_bucket(plan, result.bucket)
                if entry is None:
                    logger.debug(
                        "Bucket %d is not allocated by the rampup plan for %s", result.bucket, key
                    )
                    continue
                if self.rule_evaluator.is_excluded(flow.flow_name, key, entry.version):
                    logger.debug(
                        "Version %s of %s deselected by ramp rule for flow %s",
                        entry.version,
                        key,
                        flow.flow_name,
                    )
                    excluded[key] = entry
                    continue

            try:
                image_version = self._exact_version(key, entry.version)
            except Exception as exc:
                if not tolerant:
                    raise
                logger.warning("Rampup version unavailable: %s", exc)
                continue
            result.decide(key, VersionDecision(image_version, Selection.RAMPUP, tuple(plan)))
            logger.debug(
                "Version %s selected for %s with rampup percentage %d",
                entry.version,
                key,
                entry.percentage,
            )

        if excluded:
            self._rule_fallback(excluded, walked, result, tolerant)

    def _rule_fallback(
        self,
        excluded: Dict[str, RampupEntry],
        plans: Dict[str, List[RampupEntry]],
        result: ResolutionResult,
        tolerant: bool,
    ) -> None:
        """Resolve rule-excluded image types to their ACTIVE version in one lookup."""
        versions = self._fetch(
            lambda: self.version_catalog.active_versions_for(frozenset(excluded)),
            tolerant,
            [],
            "ACTIVE versions",
        )
        active = self._by_type(versions, excluded.keys())
        for key in sorted(excluded):
            image_version = active.get(key)
            if image_version is None:
                if not tolerant:
                    raise RampRuleFallbackFailed(key, excluded[key].version)
                logger.warning("No ACTIVE version to replace rule-excluded %s", key)
                continue
            result.decide(key, VersionDecision(image_version, Selection.ACTIVE, tuple(plans[key])))

    def _active_tier(self, result: ResolutionResult, tolerant: bool) -> None:
        remaining = frozenset(result.unresolved)
        if not remaining:
            return
        versions = self._fetch(
            lambda: self.version_catalog.active_versions_for(remaining),
            tolerant,
            [],
            "ACTIVE versions",
        )
        logger.debug("ACTIVE image versions fetched: %s", versions)
        for key, image_version in self._by_type(versions, remaining).items():
            result.decide(key, VersionDecision(image_version, Selection.ACTIVE))

    def _non_active_tier(self, result: ResolutionResult) -> None:
        remaining = frozenset(result.unresolved)
        versions = self._fetch(
            lambda: self.version_catalog.latest_non_active_versions_for(remaining),
            True,
            [],
            "latest non-ACTIVE versions",
        )
        logger.debug("Non-ACTIVE image versions fetched: %s", versions)
        for key, image_version in self._by_type(versions, remaining).items():
            result.decide(key, VersionDecision(image_version, Selection.NON_ACTIVE))

    # --- helpers ---

    def _resolve_subset(
        self,
        flow: Optional[FlowContext],
        image_types: Iterable[str],
        overlay_exempt_types: Iterable[str],
        outcome: Dict[str, Any],
    ) -> Dict[str, VersionInfo]:
        wanted = normalize_types(image_types)
        plans = self.rampup_store.rampup_for_types(frozenset(wanted))
        result = self.resolve(flow, wanted, plans=plans)
        outcome["result"] = result
        missing = result.unresolved - normalize_types(overlay_exempt_types)
        if missing:
            raise UnresolvedImageTypes(missing)
        return result.version_infos()

    def _all_image_types(self) -> List[str]:
        return [image_type.name for image_type in self.type_catalog.list_all_image_types()]

    def _bucket(self, flow: FlowContext) -> int:
        bucket = self.bucket_fn(flow)
        if isinstance(bucket, bool) or not isinstance(bucket, int):
            raise InvalidBucket(bucket)
        if not 1 <= bucket <= BUCKET_COUNT:
            raise InvalidBucket(bucket)
        return bucket

    def _exact_version(self, image_type: str, version: str) -> ImageVersion:
        """Catalog entry whose type and version both match, ignoring case."""
        for candidate in self.version_catalog.find_versions(image_type, version) or ():
            if candidate.matches(image_type, version):
                return candidate
        raise VersionNotFound(image_type, version, "not in the image version catalog")

    @staticmethod
    def _by_type(
        versions: Optional[Iterable[ImageVersion]], wanted: Iterable[str]
    ) -> Dict[str, ImageVersion]:
        """Index versions by normalized type, keeping the first per type."""
        keys = normalize_types(wanted)
        indexed: Dict[str, ImageVersion] = {}
        for image_version in versions or ():
            key = image_version.key
            if key in keys and key not in indexed:
                indexed[key] = image_version
        return indexed

    @staticmethod
    def _fetch(call: Callable[[], Any], tolerant: bool, default: Any, what: str) -> Any:
        """Run a catalog call; failures propagate unless `tolerant`."""
        if not tolerant:
            return call()
        try:
            return call()
        except Exception as exc:
            logger.warning("Failed to fetch %s: %s", what, exc)
            return default

    @contextmanager
    def _recorded(self, operation: str, flow: Optional[FlowContext]) -> Iterator[Dict[str, Any]]:
        outcome: Dict[str, Any] = {}
        try:
            yield outcome
        except Exception as exc:
            self._record(operation, flow, outcome.get("result"), exc)
            raise
        self._record(operation, flow, outcome.get("result"), None)

    def _record(
        self,
        operation: str,
        flow: Optional[FlowContext],
        result: Optional[ResolutionResult],
        error: Optional[BaseException],
    ) -> None:
        if self.registry is None:
            return
        try:
            self.registry.record(operation, flow=flow, result=result, error=error)
        except Exception as exc:
            # Don't fail resolution if monitoring fails
            logger.warning("Failed to record %s resolution: %s", operation, exc)
