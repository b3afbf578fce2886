"""
Inbound webhook events.

Z-API delivers every kind of message through the same callback with a different
shape. ``parse_inbound`` turns a raw payload into exactly one of the event
variants below, or None when there is nothing for the bot to do.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from ledgerbot.models.schemas import AttachmentKind


class MediaMessage(BaseModel):
    type: Literal["media"] = "media"
    group_id: str
    message_id: str
    participant_phone: str
    kind: AttachmentKind
    url: str
    mimetype: str | None = None
    caption: str | None = None


class ButtonReply(BaseModel):
    type: Literal["button_reply"] = "button_reply"
    group_id: str
    message_id: str
    participant_phone: str
    selected_id: str


class ListReply(BaseModel):
    type: Literal["list_reply"] = "list_reply"
    group_id: str
    message_id: str
    participant_phone: str
    selected_id: str


InboundEvent = Annotated[Union[MediaMessage, ButtonReply, ListReply], Field(discriminator="type")]
_event_adapter = TypeAdapter(InboundEvent)

# payload key -> (attachment kind, url field)
_MEDIA_FIELDS = {
    "image": ("image", "imageUrl"),
    "document": ("document", "documentUrl"),
    "audio": ("audio", "audioUrl"),
}


def parse_inbound(payload: dict) -> MediaMessage | ButtonReply | ListReply | None:
    if payload.get("fromMe"):
        return None
    if not payload.get("isGroup"):
        return None

    base = {
        "group_id": payload.get("phone"),
        "message_id": payload.get("messageId"),
        "participant_phone": payload.get("participantPhone"),
    }
    if not all(base.values()):
        return None

    buttons = payload.get("buttonsResponseMessage")
    if buttons and buttons.get("buttonId"):
        return _event_adapter.validate_python(
            {**base, "type": "button_reply", "selected_id": buttons["buttonId"]}
        )

    listed = payload.get("listResponseMessage")
    if listed and listed.get("selectedRowId"):
        return _event_adapter.validate_python(
            {**base, "type": "list_reply", "selected_id": listed["selectedRowId"]}
        )

    for field, (kind, url_key) in _MEDIA_FIELDS.items():
        media = payload.get(field)
        if media and media.get(url_key):
            return _event_adapter.validate_python(
                {
                    **base,
                    "type": "media",
                    "kind": kind,
                    "url": media[url_key],
                    "mimetype": media.get("mimeType"),
                    "caption": media.get("caption"),
                }
            )
    return None
