"""
Offline status responder.

Builds the status reply sent to game clients while no origin is connected.
The document mimics a normal server list response with the protocol version
set to -1, so clients show the server as incompatible/offline, and zero
players.
"""

from pydantic import BaseModel, Field

from mcbridge.protocol.varint import encode_packet, encode_string

STATUS_RESPONSE_ID: int = 0x00

DEFAULT_VERSION_NAME = "§4Offline"
DEFAULT_DESCRIPTION = "Server Is Offline"
DEFAULT_FOOTER = "View YOUR_DOMAIN_HERE"


class StatusVersion(BaseModel):
    name: str = DEFAULT_VERSION_NAME
    protocol: int = -1


class StatusPlayers(BaseModel):
    max: int = 0
    online: int = 0


class TextComponent(BaseModel):
    """Chat text component as used in the server description."""

    text: str
    color: str | None = None
    bold: bool | None = None
    extra: list["TextComponent"] | None = None


class StatusDocument(BaseModel):
    """Server list status document."""

    version: StatusVersion = Field(default_factory=StatusVersion)
    players: StatusPlayers = Field(default_factory=StatusPlayers)
    description: TextComponent


def offline_status_document(
    description: str = DEFAULT_DESCRIPTION,
    footer: str = DEFAULT_FOOTER,
) -> StatusDocument:
    """Build the status document shown while the origin is offline."""
    extra = [TextComponent(text="\n")]
    if footer:
        extra.append(TextComponent(text=footer, color="dark_purple", bold=True))
    return StatusDocument(
        description=TextComponent(
            text=description,
            color="red",
            bold=True,
            extra=extra,
        )
    )


def build_status_response(
    description: str = DEFAULT_DESCRIPTION,
    footer: str = DEFAULT_FOOTER,
) -> bytes:
    """
    Build the complete offline status response packet (ID 0x00).

    Pure: the same arguments always produce byte-identical output.
    """
    document = offline_status_document(description, footer)
    motd = document.model_dump_json(exclude_none=True)
    return encode_packet(STATUS_RESPONSE_ID, encode_string(motd))
