"""
Orchestration engine for quorumctl

Runs one reconcile for every cluster (optionally filtered) and presents the
result for the dry-run, apply and status commands.
"""

from concurrent.futures import ThreadPoolExecutor

from .cancellation import CancellationToken
from .config import Settings
from .constants import KIND_CLUSTER, KIND_CLUSTER_STATUS
from .context import ControllerContext
from .errors import TransientReconcileError
from .log import get_logger
from .models import ClusterObservedState
from .reconciler import Reconciler, ReconcileResult

logger = get_logger(__name__)


class Engine:
    """
    Main orchestration engine for quorumctl

    Coordinates one pass over all clusters:
    1. Bootstrap - ensure tables and list clusters
    2. Reconcile - each cluster on a worker thread, independently
    3. Dry-Run/Apply - print planned actions or the actions taken
    """

    def __init__(self, settings: Settings, ctx: ControllerContext | None = None):
        self.settings = settings
        self.ctx = ctx or ControllerContext.from_settings(settings)
        self.store = self.ctx.store
        self.reconciler = Reconciler(self.ctx)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.ctx.close()

    def cluster_names(self) -> list[str]:
        return [
            obj.name
            for obj in self.store.list_objects(
                KIND_CLUSTER, self.settings.cluster_filter
            )
        ]

    def reconcile_cluster(
        self,
        name: str,
        dry_run: bool = False,
        token: CancellationToken | None = None,
    ) -> ReconcileResult | None:
        """
        Reconcile one cluster, containing every failure to that cluster

        Returns:
            ReconcileResult, or None if the reconcile did not complete
        """
        try:
            return self.reconciler.reconcile(name, dry_run=dry_run, token=token)
        except TransientReconcileError as e:
            logger.warning(
                "Reconcile did not complete, will retry",
                extra={"cluster": name, "error": str(e)},
            )
            return None
        except Exception as e:
            logger.error(
                "Error reconciling cluster",
                extra={"cluster": name, "error": str(e)},
                exc_info=True,
            )
            return None

    def reconcile_all(
        self, dry_run: bool = False, token: CancellationToken | None = None
    ) -> dict[str, ReconcileResult | None]:
        """Reconcile every cluster concurrently; one failure never stops the rest"""
        self.store.ensure_tables()
        names = self.cluster_names()
        logger.info("Clusters loaded", extra={"cluster_count": len(names)})
        if not names:
            return {}

        with ThreadPoolExecutor(
            max_workers=min(self.settings.workers, len(names)),
            thread_name_prefix="reconcile",
        ) as pool:
            futures = {
                name: pool.submit(self.reconcile_cluster, name, dry_run, token)
                for name in names
            }
            return {name: future.result() for name, future in futures.items()}

    def dry_run(self):
        """Show the writes a reconcile would perform, without performing them"""
        results = self.reconcile_all(dry_run=True)
        planned = {n: r for n, r in results.items() if r is not None and r.actions}

        if not planned:
            logger.info("No actions would be taken.")
            return

        print("Planned actions:")
        print("=" * 60)
        for name, result in planned.items():
            print(f"\nCluster: {name} (phase {result.phase.value})")
            print("-" * 40)
            for i, action in enumerate(result.actions, 1):
                print(f"{i}. {action}")
                if action.reason:
                    print(f"   Reason: {action.reason}")
                if action.changes:
                    print(f"   Changes: {action.changes}")
                print()

    def apply(self):
        """Reconcile every cluster once and report what was written"""
        results = self.reconcile_all(dry_run=False)
        total = sum(len(r.actions) for r in results.values() if r is not None)
        failed = [name for name, r in results.items() if r is None]

        if total == 0:
            logger.info("No actions executed.")
        for name, result in results.items():
            if result is None or not result.actions:
                continue
            print(f"\nCluster: {name} (phase {result.phase.value})")
            for action in result.actions:
                print(f"✓ {action}")
                if action.reason:
                    print(f"  Reason: {action.reason}")
        if failed:
            print(f"\nReconcile incomplete for: {', '.join(failed)}")

    def status(self):
        """Print the observed state of each cluster"""
        self.store.ensure_tables()
        names = self.cluster_names()
        if not names:
            print("No clusters found.")
            return

        for name in names:
            obj = self.store.get(KIND_CLUSTER_STATUS, name)
            print(f"\nCluster: {name}")
            print("-" * 40)
            if obj is None:
                print("  Not yet reconciled")
                continue
            observed = ClusterObservedState.from_dict(obj.body)
            print(f"  Phase: {observed.phase.value}")
            if observed.message:
                print(f"  Message: {observed.message}")
            if observed.applied_topology:
                topo = observed.applied_topology
                print(
                    f"  Topology: {topo.primaries} primaries, "
                    f"{topo.secondaries} secondaries"
                )
            ready = sum(1 for m in observed.members if m.ready)
            print(f"  Members ready: {ready}/{len(observed.members)}")
            for group, decision in sorted(observed.last_scaling.items()):
                print(
                    f"  Last {group} scaling: {decision.action.value} -> "
                    f"{decision.target_replicas} ({decision.reason})"
                )
            for condition in observed.conditions:
                print(
                    f"  {condition.type}={condition.status.value} "
                    f"[{condition.reason}] {condition.message}"
                )
