"""
Template change classifier for quorumctl

Decides whether the difference between the running member template and the
freshly rendered one must be applied now or can wait, and produces the template
that is safe to apply.

Critical fields (image, resources, service account, the ordered container list)
are always applied. Everything else (environment, engine configuration, labels)
is deferred while the fleet is still forming, since pushing it would restart
members mid-formation for no safety benefit.
"""

from collections.abc import Sequence
from dataclasses import dataclass, replace

from .constants import STARTUP_ONLY_CONFIG_KEYS
from .log import get_logger
from .models import (
    EnvVar,
    FormationSnapshot,
    MemberRuntimeTemplate,
    ResourceRequirements,
)

logger = get_logger(__name__)

CRITICAL_FIELDS = ("image", "resources", "service_account", "containers")
NON_CRITICAL_FIELDS = ("env", "config", "labels")


@dataclass(frozen=True)
class Classification:
    apply: bool
    reason: str
    template: MemberRuntimeTemplate | None = None
    critical: tuple[str, ...] = ()
    deferred: tuple[str, ...] = ()


def env_subset_equal(current: Sequence[EnvVar], desired: Sequence[EnvVar]) -> bool:
    """
    Whether every desired entry is present in current with the same value

    Entries present only in current are ignored: other controllers append their
    own entries to the same template, and removing them would make both sides
    overwrite each other forever. An empty desired set is always satisfied.
    """
    by_name = {e.name: e for e in current}
    for wanted in desired:
        present = by_name.get(wanted.name)
        if present is None or not present.matches(wanted):
            return False
    return True


def resources_equal(a: ResourceRequirements, b: ResourceRequirements) -> bool:
    """Field-by-field comparison; a key present on one side only is a difference"""
    for left, right in ((a.requests, b.requests), (a.limits, b.limits)):
        if set(left) != set(right):
            return False
        for key, value in left.items():
            if value != right[key]:
                return False
    return True


def _significant_config(config: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in config.items() if k not in STARTUP_ONLY_CONFIG_KEYS}


def _labels_satisfied(current: dict[str, str], desired: dict[str, str]) -> bool:
    return all(current.get(k) == v for k, v in desired.items())


class TemplateClassifier:
    """Classifies template differences into apply-now and deferred"""

    def critical_differences(
        self, current: MemberRuntimeTemplate, desired: MemberRuntimeTemplate
    ) -> tuple[str, ...]:
        diffs = []
        if current.image != desired.image:
            diffs.append("image")
        if not resources_equal(current.resources, desired.resources):
            diffs.append("resources")
        if current.service_account != desired.service_account:
            diffs.append("service_account")
        if tuple(current.containers) != tuple(desired.containers):
            diffs.append("containers")
        return tuple(diffs)

    def non_critical_differences(
        self, current: MemberRuntimeTemplate, desired: MemberRuntimeTemplate
    ) -> tuple[str, ...]:
        diffs = []
        if not env_subset_equal(current.env, desired.env):
            diffs.append("env")
        if _significant_config(current.config) != _significant_config(desired.config):
            diffs.append("config")
        if not _labels_satisfied(current.labels, desired.labels):
            diffs.append("labels")
        return tuple(diffs)

    def classify(
        self,
        current: MemberRuntimeTemplate | None,
        desired: MemberRuntimeTemplate,
        formation: FormationSnapshot,
    ) -> Classification:
        """
        Classify a template change

        Args:
            current: Template the substrate reports is running, None if the
                fleet has none yet
            desired: Template freshly rendered from desired state
            formation: Readiness of the fleet right now

        Returns:
            Classification whose template is what should be written when apply
            is True
        """
        if current is None:
            return Classification(
                apply=True,
                reason="Fleet has no template yet",
                template=desired,
                critical=CRITICAL_FIELDS,
            )

        critical = self.critical_differences(current, desired)
        non_critical = self.non_critical_differences(current, desired)

        if critical:
            if formation.stable:
                template = self._merge(current, desired)
                deferred: tuple[str, ...] = ()
            else:
                template = self._reduce(current, desired)
                deferred = non_critical
            reason = f"Critical fields changed: {', '.join(critical)}"
            if deferred:
                reason += f"; deferred during formation: {', '.join(deferred)}"
            result = Classification(
                apply=True,
                reason=reason,
                template=template,
                critical=critical,
                deferred=deferred,
            )
        elif non_critical and formation.stable:
            result = Classification(
                apply=True,
                reason=f"Fleet stable, applying: {', '.join(non_critical)}",
                template=self._merge(current, desired),
            )
        elif non_critical:
            result = Classification(
                apply=False,
                reason=(
                    f"Deferred until all members are healthy "
                    f"({formation.ready_members}/{formation.total_members}): "
                    f"{', '.join(non_critical)}"
                ),
                deferred=non_critical,
            )
        else:
            result = Classification(apply=False, reason="Template in sync")

        logger.debug(
            "Template classified",
            extra={
                "apply": result.apply,
                "critical": list(result.critical),
                "deferred": list(result.deferred),
                "stable": formation.stable,
            },
        )
        return result

    def _reduce(
        self, current: MemberRuntimeTemplate, desired: MemberRuntimeTemplate
    ) -> MemberRuntimeTemplate:
        """Current template with only critical fields and startup keys replaced"""
        config = dict(current.config)
        for key in STARTUP_ONLY_CONFIG_KEYS:
            if key in desired.config:
                config[key] = desired.config[key]
            else:
                config.pop(key, None)
        return replace(
            current,
            image=desired.image,
            resources=desired.resources,
            service_account=desired.service_account,
            containers=desired.containers,
            config=config,
        )

    def _merge(
        self, current: MemberRuntimeTemplate, desired: MemberRuntimeTemplate
    ) -> MemberRuntimeTemplate:
        """Desired template keeping env entries and labels added by others"""
        names = {e.name for e in desired.env}
        foreign = tuple(e for e in current.env if e.name not in names)
        labels = {**current.labels, **desired.labels}
        return replace(desired, env=tuple(desired.env) + foreign, labels=labels)
