import httpx
from loguru import logger

from ledgerbot.errors import UpstreamUnavailable
from ledgerbot.models.schemas import Button, GatewayGroup, OptionList, Participant


class ZApiClient:
    """Thin async wrapper over the Z-API WhatsApp REST endpoints."""

    def __init__(
        self,
        instance_id: str,
        token: str,
        client_token: str,
        base_url: str = "https://api.z-api.io",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_token = client_token
        self.http = httpx.AsyncClient(
            base_url=f"{base_url}/instances/{instance_id}/token/{token}",
            headers={"client-token": client_token},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Z-API {} {} failed with {}: {}", method, path, e.response.status_code, e.response.text)
            raise UpstreamUnavailable("O WhatsApp não respondeu como esperado.") from e
        except httpx.HTTPError as e:
            logger.error("Z-API {} {} failed: {}", method, path, e)
            raise UpstreamUnavailable("Não foi possível falar com o WhatsApp.") from e
        return response

    async def _request_json(self, method: str, path: str, expected: type = dict, **kwargs):
        response = await self._request(method, path, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            logger.error("Z-API {} {} returned a body that is not JSON: {!r}", method, path, response.text[:200])
            raise UpstreamUnavailable("O WhatsApp não respondeu como esperado.") from e
        if data is None:
            return expected()
        if not isinstance(data, expected):
            logger.error(
                "Z-API {} {} returned {} instead of {}", method, path, type(data).__name__, expected.__name__
            )
            raise UpstreamUnavailable("O WhatsApp não respondeu como esperado.")
        return data

    @staticmethod
    def _participants(raw) -> list[Participant]:
        if not isinstance(raw, list):
            return []
        return [Participant(phone=str(p["phone"])) for p in raw if isinstance(p, dict) and p.get("phone")]

    async def list_groups(self) -> list[GatewayGroup]:
        items = await self._request_json("GET", "/groups", expected=list, params={"page": 1, "pageSize": 500})
        groups = []
        for item in items:
            if not isinstance(item, dict) or not item.get("phone"):
                continue
            group_id = str(item["phone"])
            groups.append(
                GatewayGroup(
                    group_id=group_id,
                    name=item.get("name") or group_id,
                    participants=self._participants(item.get("participants")),
                )
            )
        logger.debug("Z-API returned {} groups", len(groups))
        return groups

    async def fetch_group_roster(self, group_id: str) -> list[Participant]:
        data = await self._request_json("GET", f"/group-metadata/{group_id}")
        return self._participants(data.get("participants"))

    async def download_attachment(self, url: str) -> bytes:
        # Media URLs are absolute and live outside the instance base path
        try:
            response = await self.http.get(url, headers={"client-token": self.client_token})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Media download failed for {}: {}", url, e)
            raise UpstreamUnavailable("Não foi possível baixar a mídia.") from e
        logger.info("Downloaded media ({} bytes)", len(response.content))
        return response.content

    async def send_text(self, chat_id: str, text: str) -> dict:
        logger.info("Sending text to {}", chat_id)
        return await self._request_json("POST", "/send-text", json={"phone": chat_id, "message": text})

    async def send_buttons(self, chat_id: str, text: str, buttons: list[Button]) -> dict:
        logger.info("Sending {} button(s) to {}", len(buttons), chat_id)
        payload = {
            "phone": chat_id,
            "message": text,
            "buttonList": {"buttons": [b.model_dump() for b in buttons]},
        }
        return await self._request_json("POST", "/send-button-list", json=payload)

    async def send_list(self, chat_id: str, text: str, option_list: OptionList) -> dict:
        logger.info("Sending option list ({} options) to {}", len(option_list.options), chat_id)
        payload = {
            "phone": chat_id,
            "message": text,
            "optionList": {
                "title": option_list.title,
                "buttonLabel": option_list.button_label,
                "options": [o.model_dump() for o in option_list.options],
            },
        }
        return await self._request_json("POST", "/send-option-list", json=payload)
