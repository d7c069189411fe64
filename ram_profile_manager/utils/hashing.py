"""Fast file and directory hashing utilities.

Uses xxhash by default; md5 and sha256 are available on request.
Designed for mirror verification where speed matters more than
cryptographic security.
"""

import hashlib
import os
from pathlib import Path
from typing import Dict

import xxhash

# Buffer size for file reading (64KB is good for most filesystems)
BUFFER_SIZE = 65536


def fast_hash_file(file_path: Path, algorithm: str = "xxhash") -> str:
    """Compute a fast hash of a file.

    Args:
        file_path: Path to the file to hash
        algorithm: Hash algorithm ("xxhash", "md5", "sha256")

    Returns:
        Hex digest of the file hash

    Raises:
        FileNotFoundError: If file doesn't exist
        PermissionError: If file can't be read
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if not file_path.is_file():
        raise ValueError(f"Not a file: {file_path}")

    if algorithm == "xxhash":
        hasher = xxhash.xxh64()
    elif algorithm == "md5":
        hasher = hashlib.md5()
    elif algorithm == "sha256":
        hasher = hashlib.sha256()
    else:
        raise ValueError(f"Unknown algorithm: {algorithm}")

    with open(file_path, "rb") as f:
        while True:
            data = f.read(BUFFER_SIZE)
            if not data:
                break
            hasher.update(data)

    return hasher.hexdigest()


def hash_directory(directory: Path, algorithm: str = "xxhash") -> Dict[str, str]:
    """Hash all regular files in a directory tree.

    Symlinks are not followed and not hashed.

    Args:
        directory: Directory to hash
        algorithm: Hash algorithm to use

    Returns:
        Dict mapping POSIX relative paths to their hashes

    Raises:
        FileNotFoundError: If directory doesn't exist
    """
    directory = Path(directory)

    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    if not directory.is_dir():
        raise ValueError(f"Not a directory: {directory}")

    result: Dict[str, str] = {}
    for root, _dirs, files in os.walk(directory):
        for name in files:
            path = Path(root) / name
            if path.is_symlink() or not path.is_file():
                continue
            key = path.relative_to(directory).as_posix()
            try:
                result[key] = fast_hash_file(path, algorithm)
            except (PermissionError, OSError):
                # Skip files we can't read
                pass

    return dict(sorted(result.items()))


def compare_hashes(
    source_hashes: Dict[str, str],
    target_hashes: Dict[str, str]
) -> Dict[str, list]:
    """Compare two hash dictionaries to find differences.

    Args:
        source_hashes: Hash dict from source directory
        target_hashes: Hash dict from target directory

    Returns:
        Dict with keys:
            - "added": Files in source but not target
            - "removed": Files in target but not source
            - "modified": Files in both but with different hashes
            - "unchanged": Files identical in both
    """
    source_keys = set(source_hashes.keys())
    target_keys = set(target_hashes.keys())

    added = list(source_keys - target_keys)
    removed = list(target_keys - source_keys)

    common = source_keys & target_keys
    modified = []
    unchanged = []

    for key in common:
        if source_hashes[key] != target_hashes[key]:
            modified.append(key)
        else:
            unchanged.append(key)

    return {
        "added": sorted(added),
        "removed": sorted(removed),
        "modified": sorted(modified),
        "unchanged": sorted(unchanged),
    }
