"""Example usage of stream_gobbler package."""

import subprocess
import sys

from stream_gobbler import LineGobbler, run_command


def main():
    """Demonstrate draining a child process."""
    print("Stream Gobbler Example")

    # Gobbling a Popen's pipes by hand
    proc = subprocess.Popen(
        [sys.executable, "-c", "import sys\nfor i in range(5): print(i); print('err', i, file=sys.stderr)"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    stdout_lines = []
    out = LineGobbler(proc.stdout, stdout_lines)
    err = LineGobbler(proc.stderr, on_line=lambda line: print(f"stderr: {line}"))
    out.start()
    err.start()
    proc.wait()
    out.join()
    err.join()
    print(f"Collected stdout: {stdout_lines}")

    # Same thing through the runner
    print("Using run_command:")
    result = run_command("echo hello; echo oops >&2", verbose=True)
    print(f"Exit code: {result.exit_code}")


if __name__ == "__main__":
    main()
