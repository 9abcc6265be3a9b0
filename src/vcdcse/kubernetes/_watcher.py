"""Waits for a cluster to converge."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from vcdcse._config import DEFAULT_POLL_INTERVAL
from vcdcse.exceptions import ClusterError, TimeoutError
from vcdcse.kubernetes._protocols import EntityStore
from vcdcse.kubernetes._reconstruct import cluster_status
from vcdcse.models.cluster import ClusterState, ClusterStatus

logger = logging.getLogger(__name__)


class ProvisioningWatcher:
    """Polls a cluster until it is provisioned.

    The ``error`` state is final unless the cluster has auto repair on
    errors enabled, in which case CSE keeps trying and so does the watcher.

    Example:
        ```python
        watcher = ProvisioningWatcher(client.entities, poll_interval=30)
        status = watcher.wait(cluster_id, timeout=3600)
        ```
    """

    def __init__(
        self,
        store: EntityStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def wait(self, cluster_id: str, timeout: float = 0) -> ClusterStatus:
        """Block until the cluster reaches the ``provisioned`` state.

        Args:
            cluster_id: ID of the cluster entity.
            timeout: Seconds to wait in total. 0 waits forever.

        Returns:
            The last status read.

        Raises:
            ClusterError: If the cluster fails and auto repair is disabled.
            TimeoutError: If the timeout elapses first. The cluster is left as is.
        """
        start = self._clock()
        with self._store.quiet():
            while True:
                status = cluster_status(self._store.get(cluster_id))

                if status.state == ClusterState.PROVISIONED.value:
                    return status
                if status.state == ClusterState.ERROR.value and not status.auto_repair_on_errors:
                    raise ClusterError(
                        f"cluster '{cluster_id}' got an error and 'auto_repair_on_errors' is "
                        f"disabled, aborting. Latest error: {status.latest_error or 'unknown'}",
                        cluster_id=cluster_id,
                        state=status.state,
                        details=status.errors,
                    )

                if timeout and self._clock() - start >= timeout:
                    raise TimeoutError(
                        f"timeout of {timeout} seconds reached, latest state obtained for "
                        f"cluster '{cluster_id}' was '{status.state}'",
                        cluster_id=cluster_id,
                        state=status.state,
                    )
                logger.debug(
                    "Cluster '%s' is in '%s' state, will check again in %s seconds",
                    cluster_id,
                    status.state,
                    self.poll_interval,
                )
                self._sleep(self.poll_interval)
