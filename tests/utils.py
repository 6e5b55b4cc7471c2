from __future__ import annotations

import subprocess


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], returncode, stdout, stderr)


class FakeCommands:
    """Stand-in for subprocess.run answering by argv prefix.

    Each prefix holds a queue of responses; the last one repeats once the
    queue is drained. Unscripted commands fail with exit code 1.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []
        self._rules: list[tuple[tuple[str, ...], list]] = []

    def script(self, prefix: list[str], *responses) -> None:
        self._rules.append((tuple(prefix), list(responses)))

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        self.kwargs.append(kwargs)
        for prefix, responses in self._rules:
            if tuple(cmd[: len(prefix)]) == prefix:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if callable(response):
                    response = response(cmd)
                if isinstance(response, BaseException):
                    raise response
                return subprocess.CompletedProcess(cmd, response.returncode, response.stdout, response.stderr)
        return subprocess.CompletedProcess(cmd, 1, "", f"unscripted: {' '.join(cmd)}")

    def called(self, *prefix: str) -> list[list[str]]:
        return [call for call in self.calls if tuple(call[: len(prefix)]) == prefix]

