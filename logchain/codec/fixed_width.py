"""
Fixed-width text fields.

The store keeps the entry type in a ``bytes8`` field and the message in a
``bytes32`` field. Text is UTF-8 encoded and right-padded with zero bytes;
decoding strips the trailing zeros again. A NUL at the end of the original
text is indistinguishable from padding and does not survive a round trip.
"""

from __future__ import annotations

import logging

from ..errors import DecodingError, EncodingError
from ..types import MESSAGE_FIELD_WIDTH, TYPE_FIELD_WIDTH, OversizePolicy

logger = logging.getLogger(__name__)


class FixedWidthCodec:
    """
    Encodes short text into fixed-width binary fields and back.

    One oversize policy applies to every field the codec touches.

    Usage:
        codec = FixedWidthCodec()
        raw = codec.encode("INFO", 8)      # b"INFO\\x00\\x00\\x00\\x00"
        codec.decode(raw)                  # "INFO"
    """

    def __init__(self, policy: OversizePolicy = OversizePolicy.TRUNCATE):
        self.policy = policy

    def encode(self, text: str | bytes, width: int) -> bytes:
        """
        Encode text into exactly ``width`` bytes.

        Args:
            text: Text to encode (bytes are taken as already UTF-8 encoded)
            width: Field width in bytes

        Returns:
            ``width`` bytes, zero-padded on the right.

        Raises:
            EncodingError: If the text is too long and the policy is REJECT.
        """
        if width <= 0:
            raise ValueError(f"width must be positive, got {width}")

        encoded = text if isinstance(text, bytes) else text.encode("utf-8")

        if len(encoded) > width:
            if self.policy == OversizePolicy.REJECT:
                raise EncodingError(
                    f"text is {len(encoded)} bytes, field holds {width}"
                )
            encoded = self._truncate(encoded, width)
            logger.warning(
                f"Text truncated to {len(encoded)} bytes to fit a {width}-byte field"
            )

        return encoded.ljust(width, b"\x00")

    def decode(self, raw: bytes) -> str:
        """
        Strip trailing zero bytes and decode as UTF-8.

        Raises:
            DecodingError: If the remaining bytes are not valid UTF-8.
        """
        try:
            return bytes(raw).rstrip(b"\x00").decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingError(f"field is not valid UTF-8 text: {e}") from e

    def encode_type(self, text: str | bytes) -> bytes:
        """Encode an entry type tag into its 8-byte field."""
        return self.encode(text, TYPE_FIELD_WIDTH)

    def encode_message(self, text: str | bytes) -> bytes:
        """Encode an entry message into its 32-byte field."""
        return self.encode(text, MESSAGE_FIELD_WIDTH)

    @staticmethod
    def is_empty(raw: bytes) -> bool:
        """True if the field holds nothing but zero bytes."""
        return not any(raw)

    @staticmethod
    def _truncate(encoded: bytes, width: int) -> bytes:
        # Drop a multi-byte character cut in half by the slice.
        return encoded[:width].decode("utf-8", errors="ignore").encode("utf-8")
