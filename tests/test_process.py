from __future__ import annotations

import asyncio
import shutil
import signal
import tempfile
import unittest
from pathlib import Path

from recurclam.backlog import ScanTask
from recurclam.workers.process import (
    ScannerCommand,
    SpawnFailure,
    Termination,
    reset_log_dir,
    spawn_worker,
    worker_log_path,
)

ECHO_SCANNER = "sh -c 'echo \"scan $1 ${2:-plain}\"' scanner"


class TerminationTests(unittest.TestCase):
    def test_classifies_return_codes(self) -> None:
        self.assertEqual(Termination.from_returncode(0), Termination(kind="exit", code=0))
        self.assertEqual(Termination.from_returncode(1).code, 1)
        self.assertTrue(Termination.from_returncode(-signal.SIGKILL).killed)

        other = Termination.from_returncode(-signal.SIGTERM)
        self.assertFalse(other.killed)
        self.assertEqual(other.kind, "signal")
        self.assertEqual(other.describe(), "signal SIGTERM")
        self.assertEqual(Termination.from_returncode(2).describe(), "exit code 2")


class ScannerCommandTests(unittest.TestCase):
    def test_recursive_flag_only_for_recursive_tasks(self) -> None:
        command = ScannerCommand()
        self.assertEqual(command.argv(ScanTask("/a", False)), ["clamscan", "/a"])
        self.assertEqual(command.argv(ScanTask("/a/b", True)), ["clamscan", "/a/b", "--recursive=yes"])

    def test_command_string_is_split(self) -> None:
        command = ScannerCommand(command="clamscan --infected --quiet", recursive_flag="-r")
        self.assertEqual(
            command.argv(ScanTask("/dir with space", True)),
            ["clamscan", "--infected", "--quiet", "/dir with space", "-r"],
        )


class LogDirTests(unittest.TestCase):
    def test_reset_clears_previous_logs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "recurclam"
            (log_dir / "nested").mkdir(parents=True)
            worker_log_path(log_dir, 0).write_text("old", encoding="utf-8")

            reset_log_dir(log_dir)

            self.assertTrue(log_dir.is_dir())
            self.assertEqual(list(log_dir.iterdir()), [])

    def test_reset_creates_missing_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "a" / "b"
            reset_log_dir(log_dir)
            self.assertTrue(log_dir.is_dir())

    def test_reset_replaces_a_plain_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "recurclam"
            log_dir.write_text("not a directory", encoding="utf-8")

            reset_log_dir(log_dir)

            self.assertTrue(log_dir.is_dir())
            self.assertEqual(list(log_dir.iterdir()), [])

    def test_worker_log_path_uses_backlog_index(self) -> None:
        self.assertEqual(worker_log_path(Path("/tmp/recurclam"), 7), Path("/tmp/recurclam/worker7.log"))


@unittest.skipUnless(shutil.which("sh"), "requires a POSIX shell")
class SpawnWorkerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.log_dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_writes_header_and_scanner_output(self) -> None:
        command = ScannerCommand(command=ECHO_SCANNER, recursive_flag="--recursive=yes")

        worker = await spawn_worker(ScanTask("/srv", True), 4, command=command, log_dir=self.log_dir)
        termination = await worker.wait()

        self.assertEqual(termination, Termination(kind="exit", code=0))
        lines = worker.log_path.read_text(encoding="utf-8").splitlines()
        self.assertEqual(worker.log_path.name, "worker4.log")
        self.assertEqual(lines[0], "# recurclam worker 4")
        self.assertTrue(lines[1].startswith("# $ sh -c "))
        self.assertTrue(lines[1].endswith("scanner /srv --recursive=yes"))
        self.assertEqual(lines[2], "")
        self.assertEqual(lines[3], "scan /srv --recursive=yes")

    async def test_non_recursive_task_passes_no_flag(self) -> None:
        command = ScannerCommand(command=ECHO_SCANNER)

        worker = await spawn_worker(ScanTask("/srv", False), 0, command=command, log_dir=self.log_dir)
        await worker.wait()

        self.assertEqual(worker.argv[-1], "/srv")
        self.assertIn("scan /srv plain", worker.log_path.read_text(encoding="utf-8"))

    async def test_stdin_is_closed_and_stderr_captured(self) -> None:
        command = ScannerCommand(command="sh -c 'cat; echo oops >&2; exit 3' scanner")

        worker = await spawn_worker(ScanTask("/srv", False), 1, command=command, log_dir=self.log_dir)
        termination = await worker.wait()

        self.assertEqual(termination.code, 3)
        self.assertIn("oops", worker.log_path.read_text(encoding="utf-8"))

    async def test_kill_reports_forced_termination(self) -> None:
        command = ScannerCommand(command="sh -c 'exec sleep 30' scanner")

        worker = await spawn_worker(ScanTask("/srv", False), 2, command=command, log_dir=self.log_dir)
        worker.kill()
        termination = await worker.wait()
        worker.kill()

        self.assertTrue(termination.killed)

    async def test_kill_reaches_processes_the_scanner_started(self) -> None:
        command = ScannerCommand(command="sh -c '(sleep 1; echo survivor) & wait' scanner")

        worker = await spawn_worker(ScanTask("/srv", False), 3, command=command, log_dir=self.log_dir)
        await asyncio.sleep(0.2)
        worker.kill()
        termination = await worker.wait()
        await asyncio.sleep(1.5)

        self.assertTrue(termination.killed)
        self.assertNotIn("survivor", worker.log_path.read_text(encoding="utf-8"))

    async def test_missing_binary_raises_spawn_failure(self) -> None:
        command = ScannerCommand(command="recurclam-no-such-scanner")

        with self.assertRaises(SpawnFailure) as ctx:
            await spawn_worker(ScanTask("/srv", False), 5, command=command, log_dir=self.log_dir)

        self.assertEqual(ctx.exception.index, 5)
        log_text = worker_log_path(self.log_dir, 5).read_text(encoding="utf-8")
        self.assertIn("# spawn failed:", log_text)


if __name__ == "__main__":
    unittest.main()
