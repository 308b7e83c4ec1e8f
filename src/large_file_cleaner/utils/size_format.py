"""Human-readable byte sizes."""

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB


def format_size(num_bytes: int) -> str:
    """
    Convert a byte count to a human-readable string.

    Examples:
        format_size(512) -> "512 bytes"
        format_size(132120576) -> "126.00 MB"
    """
    if num_bytes < 0:
        raise ValueError(f"Size cannot be negative: {num_bytes}")

    if num_bytes >= GIB:
        return f"{num_bytes / GIB:.2f} GB"
    if num_bytes >= MIB:
        return f"{num_bytes / MIB:.2f} MB"
    if num_bytes >= KIB:
        return f"{num_bytes / KIB:.2f} KB"
    return f"{num_bytes} bytes"


def megabytes_to_bytes(megabytes: int) -> int:
    """Threshold conversion used by the CLI (binary megabytes)."""
    return int(megabytes) * MIB
