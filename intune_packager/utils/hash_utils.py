"""Hash calculation utilities"""

import hashlib
from pathlib import Path

import aiofiles


async def calculate_file_hash_async(file_path: Path,
                                    algorithm: str = "sha256",
                                    chunk_size: int = 1024 * 1024) -> str:
    """
    Calculate file hash asynchronously

    Args:
        file_path: Path to file
        algorithm: Hash algorithm
        chunk_size: Read chunk size

    Returns:
        Hex digest string
    """
    hash_func = hashlib.new(algorithm)

    async with aiofiles.open(file_path, 'rb') as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            hash_func.update(chunk)

    return hash_func.hexdigest()
