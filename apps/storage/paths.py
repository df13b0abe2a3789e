import secrets
import string
import time

_ALPHABET = string.ascii_lowercase + string.digits


def build_object_path(entity_id, subfolder: str, filename: str) -> str:
    """
    Object key for an uploaded file: {entity_id}/{subfolder}/{ms-timestamp}-{random}.{ext}

    The original file name is kept on the attachment row, not in the key.
    """
    _, dot, extension = filename.rpartition(".")
    extension = extension.lower() if dot and extension else "bin"
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(10))
    return f"{entity_id}/{subfolder.strip('/')}/{int(time.time() * 1000)}-{suffix}.{extension}"
