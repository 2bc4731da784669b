"""Common utilities and types for LoadBalancer automation."""

import logging
import subprocess
from dataclasses import dataclass, field
from typing import Generic, Optional, Protocol, TypeVar, Union, runtime_checkable

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    continue_on_failure: bool = False


@dataclass(frozen=True)
class ExecResult:
    """Result of one executor call.

    `data` is untrusted text: it may be empty, non-JSON, or a JSON document
    describing a Kubernetes object or list.
    """
    success: bool
    data: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying a value (which may itself be None)."""
    value: T


@dataclass(frozen=True)
class Err:
    """Failed result carrying a diagnostic message."""
    message: str


Result = Union[Ok[T], Err]


@runtime_checkable
class CommandExecutor(Protocol):
    """Channel used to talk to the cluster.

    exec() is equivalent to running kubectl with the given arguments.
    apply_manifest() applies a YAML document and reports only text.
    """

    def exec(self, args: list[str]) -> ExecResult:
        ...

    def apply_manifest(self, yaml_text: str) -> ExecResult:
        ...


def run_command(
    cmd: list[str],
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    input_text: Optional[str] = None,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            input=input_text,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except Exception as e:
        return -1, '', str(e)


class KubectlExecutor:
    """CommandExecutor backed by the local kubectl binary."""

    def __init__(
        self,
        kubectl: str = 'kubectl',
        context: Optional[str] = None,
        kubeconfig: Optional[str] = None,
        timeout: int = 150,
    ):
        self.kubectl = kubectl
        self.context = context
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def _base_cmd(self) -> list[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd += ['--kubeconfig', self.kubeconfig]
        if self.context:
            cmd += ['--context', self.context]
        return cmd

    def exec(self, args: list[str]) -> ExecResult:
        rc, out, err = run_command(self._base_cmd() + list(args), timeout=self.timeout)
        return _to_exec_result(rc, out, err)

    def apply_manifest(self, yaml_text: str) -> ExecResult:
        cmd = self._base_cmd() + ['apply', '--validate=false', '-f', '-']
        rc, out, err = run_command(cmd, timeout=self.timeout, input_text=yaml_text)
        return _to_exec_result(rc, out, err)


def _to_exec_result(rc: int, out: str, err: str) -> ExecResult:
    error = err.strip() or None
    if rc != 0 and error is None:
        error = f'kubectl exited with code {rc}'
    return ExecResult(success=rc == 0, data=out, error=error)


def call_executor(executor: CommandExecutor, args: list[str]) -> ExecResult:
    """Run executor.exec(), turning transport exceptions into a failed result."""
    try:
        return executor.exec(args)
    except Exception as e:
        logger.error(f"Executor failed running {' '.join(args)}: {e}")
        return ExecResult(success=False, error=str(e))


def call_apply(executor: CommandExecutor, yaml_text: str) -> ExecResult:
    """Run executor.apply_manifest(), turning transport exceptions into a failed result."""
    try:
        return executor.apply_manifest(yaml_text)
    except Exception as e:
        logger.error(f"Executor failed applying manifest: {e}")
        return ExecResult(success=False, error=str(e))


def output_text(result: ExecResult) -> str:
    """Combined data and error text of a result."""
    return f"{result.data or ''}\n{result.error or ''}".strip()
