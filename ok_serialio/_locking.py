"""POSIX port ownership: UUCP lock files plus flock()/TIOCEXCL on the fd"""

import contextlib
import fcntl
import logging
import os
import termios
import typeguard
from pathlib import Path

from ok_serialio import _exceptions
from ok_serialio._options import SharingType

LOCK_DIR = "/var/lock"

log = logging.getLogger("ok_serialio.locking")


def lock_path_for(port: str) -> Path:
    """Returns the UUCP-style lock file path (LCK..name) for a device"""

    parts = Path(port).parts[-2:]
    if len(parts) == 2 and parts[1].isdigit() and parts[0].startswith("pt"):
        return Path(LOCK_DIR, f"LCK..{parts[0]}.{parts[1]}")
    return Path(LOCK_DIR, f"LCK..{parts[-1]}")


@contextlib.contextmanager
@typeguard.typechecked
def using_lock_file(port: str, sharing: SharingType):
    lock_path = lock_path_for(port)
    for _try in range(10):
        claimed = _try_lock_file(
            port=port, lock_path=lock_path, sharing=sharing
        )
        if claimed is not None:
            break
    else:
        message = "Serial port busy (lock file retries exceeded)"
        raise _exceptions.SerialOpenBusy(message, port)

    try:
        yield lock_path
    finally:
        if claimed:
            _release_lock_file(lock_path)


@contextlib.contextmanager
@typeguard.typechecked
def using_fd_lock(port: str, fd: int, sharing: SharingType):
    try:
        if sharing == "polite":
            # Fail if anyone holds it exclusively, then settle for shared
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            fcntl.flock(fd, fcntl.LOCK_UN | fcntl.LOCK_NB)
            fcntl.flock(fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
            log.debug("Acquired flock(LOCK_SH) on %s", port)
        elif sharing == "exclusive":
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            log.debug("Acquired flock(LOCK_EX) on %s", port)
    except BlockingIOError as exc:
        message = "Serial port busy (flock held elsewhere)"
        raise _exceptions.SerialOpenBusy(message, port) from exc
    except OSError:
        log.warning("Can't flock %s", port, exc_info=True)

    if sharing == "exclusive":
        try:
            fcntl.ioctl(fd, termios.TIOCEXCL)
            log.debug("Set TIOCEXCL on %s", port)
        except OSError:
            log.warning("Can't set TIOCEXCL on %s", port, exc_info=True)

    try:
        yield
    finally:
        if sharing == "exclusive":
            try:
                fcntl.ioctl(fd, termios.TIOCNXCL)
                log.debug("Cleared TIOCEXCL on %s", port)
            except OSError:
                log.warning("Can't clear TIOCEXCL on %s", port, exc_info=True)

        if sharing != "oblivious":
            try:
                fcntl.flock(fd, fcntl.LOCK_UN | fcntl.LOCK_NB)
                log.debug("Released flock on %s", port)
            except OSError:
                log.warning("Can't release flock on %s", port, exc_info=True)


def _try_lock_file(
    *, port: str, lock_path: Path, sharing: SharingType
) -> bool | None:
    """True if we made the lock, False to go on without it, None to retry"""

    if sharing == "oblivious":
        return False

    if not lock_path.parent.is_dir():
        log.debug("No lock directory %s", lock_path.parent)
        return False

    if owner_pid := _lock_file_owner(lock_path):
        if owner_pid == os.getpid():
            log.debug("We already own %s", lock_path)
            return False
        log.debug("PID %d owns %s", owner_pid, lock_path)
        message = f"Serial port busy ({lock_path}: pid={owner_pid})"
        raise _exceptions.SerialOpenBusy(message, port)

    try:
        with lock_path.open("xt") as lock_file:
            lock_file.write(f"{os.getpid():>10d}\n")
    except FileExistsError:
        log.warning("Conflict creating %s", lock_path)
        return None  # raced with another opener, look again
    except OSError:
        log.warning("Can't create %s", lock_path, exc_info=True)
        return False  # unwritable lock dir, proceed unlocked

    log.debug("Claimed %s", lock_path)
    return True


def _release_lock_file(lock_path: Path) -> None:
    if _lock_file_owner(lock_path) != os.getpid():
        return

    try:
        lock_path.unlink()
        log.debug("Released %s", lock_path)
    except OSError:
        log.warning("Can't release %s", lock_path, exc_info=True)


def _lock_file_owner(lock_path: Path) -> int | None:
    try:
        with lock_path.open("rt") as lock_file:
            owner_pid = int(lock_file.read(128).strip())
        os.kill(owner_pid, 0)
        return owner_pid
    except FileNotFoundError:
        return None
    except (ProcessLookupError, ValueError):
        try:
            lock_path.unlink()
            log.debug("Removed bad/stale %s", lock_path)
        except OSError:
            log.warning("Can't remove %s", lock_path, exc_info=True)
        return None
    except OSError:
        log.warning("Can't check %s", lock_path, exc_info=True)
        return None
