"""Options accepted by the move client."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Kubeconfig:
    """Location of a kubeconfig file and the context to use.

    An empty ``path`` means the default loading rules (``$KUBECONFIG`` or
    ``~/.kube/config``); an empty ``context`` means the current context.
    """

    path: str = ""
    context: str = ""


@dataclass(frozen=True)
class MoveOptions:
    """Inputs for one move run.

    ``namespace == ""`` moves clusters from every namespace.
    ``to_kubeconfig`` may be omitted only for dry runs.
    """

    from_kubeconfig: Kubeconfig = Kubeconfig()
    to_kubeconfig: Kubeconfig | None = None
    namespace: str = ""
    dry_run: bool = False
