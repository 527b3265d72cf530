"""
Snapshot files - load and save a TaskGraph as YAML.

A snapshot is a plain document used by the command line harness and by test
fixtures; how the surrounding application stores its tasks is its own business.
"""
import os
import tempfile
import yaml
from pathlib import Path
from typing import Union
from pydantic import ValidationError

from .logs import get_logger
from .models import TaskGraph
from .recovery import CorruptionError, FatalError, FileOperationError

log = get_logger("snapshot")

def _cleanup(temp_path):
    if temp_path is not None and os.path.exists(temp_path):
        try:
            os.unlink(temp_path)
            log.debug(f"Cleaned up temporary file: {temp_path}")
        except OSError as cleanup_error:
            log.warning(f"Could not clean up temp file {temp_path}: {cleanup_error}")

def atomic_write(file_path: Union[Path, str], text: str, create_dirs: bool = False) -> bool:
    """
    Write text to a file using an atomic replace.

    The content lands in a temporary file next to the target first, so a crash
    leaves either the old file or the new one, never a partial write.
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        if create_dirs:
            file_path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(mode='w', encoding='utf-8', dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp', delete=False) as temp_file:
            temp_path = temp_file.name
            temp_file.write(text)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        os.replace(temp_path, file_path)
        log.debug(f"Successfully saved file: {file_path}")
        return True

    except (IOError, OSError) as e:
        _cleanup(temp_path)
        error_msg = f"I/O error saving file {file_path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def save_graph(graph: TaskGraph, file_path: Union[Path, str], create_dirs: bool = False) -> bool:
    """Serialize a snapshot to YAML and write it atomically."""
    try:
        text = graph.to_yaml()
    except (yaml.YAMLError, TypeError) as e:
        error_msg = f"Snapshot serialization failed for {file_path}: {e}"
        log.critical(error_msg)
        raise FatalError(error_msg) from e
    return atomic_write(file_path, text, create_dirs=create_dirs)

def load_graph(file_path: Union[Path, str]) -> TaskGraph:
    """
    Load a snapshot from a YAML file.

    Args:
        file_path: Path to the snapshot

    Returns:
        The validated TaskGraph; an empty one if the file does not exist

    Raises:
        CorruptionError: the file is not valid YAML or does not match the model
        FileOperationError: the file exists but cannot be read
    """
    file_path = Path(file_path)
    if not file_path.exists():
        log.info(f"No snapshot at {file_path}, starting empty")
        return TaskGraph()

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            graph = TaskGraph.from_yaml(f.read())
    except yaml.YAMLError as e:
        raise CorruptionError(f"YAML syntax error in {file_path}: {e}") from e
    except ValidationError as e:
        raise CorruptionError(f"Snapshot {file_path} does not match the task model: {e}") from e
    except (IOError, OSError) as e:
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    log.debug(f"Loaded {len(graph)} tasks from {file_path}")
    return graph
