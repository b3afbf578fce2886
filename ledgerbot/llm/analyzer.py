import base64
import json

from loguru import logger
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from ledgerbot.errors import UpstreamUnavailable
from ledgerbot.llm.prompts import RECEIPT_PROMPT, TEXT_PROMPT, format_categories
from ledgerbot.models.schemas import ExpenseAnalysis

PDF_MIMETYPE = "application/pdf"


def _parse_analysis(raw: str | None) -> ExpenseAnalysis | None:
    if not raw:
        return None
    raw = raw.strip()
    # Strip markdown code fences if present
    if raw.startswith("```"):
        lines = [line for line in raw.split("\n") if not line.startswith("```")]
        raw = "\n".join(lines)
    try:
        return ExpenseAnalysis.model_validate(json.loads(raw))
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse LLM response as JSON: {}", e)
    except ValidationError as e:
        logger.warning("LLM response has no usable expense: {}", e.errors()[0]["msg"])
    return None


class ExpenseAnalyzer:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        transcription_model: str = "whisper-1",
        client: AsyncOpenAI | None = None,
    ):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.transcription_model = transcription_model

    async def _complete(self, content: list[dict]) -> ExpenseAnalysis | None:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                response_format={"type": "json_object"},
                temperature=0.1,
            )
        except OpenAIError as e:
            logger.error("LLM request failed: {}", e)
            raise UpstreamUnavailable("A análise por IA está indisponível.") from e

        raw = response.choices[0].message.content
        logger.debug("LLM raw response: {}", raw)
        return _parse_analysis(raw)

    async def analyze_image(
        self,
        data: bytes,
        caption: str | None,
        known_category_names: list[str],
        mimetype: str = "image/jpeg",
    ) -> ExpenseAnalysis | None:
        """Read a receipt image or PDF into {value, description, categoryName}."""
        prompt = RECEIPT_PROMPT.format(
            categories=format_categories(known_category_names),
            context=caption or "Nenhum",
        )
        encoded = base64.b64encode(data).decode("ascii")
        if mimetype == PDF_MIMETYPE:
            attachment = {
                "type": "file",
                "file": {"filename": "document.pdf", "file_data": f"data:{PDF_MIMETYPE};base64,{encoded}"},
            }
        else:
            attachment = {"type": "image_url", "image_url": {"url": f"data:{mimetype};base64,{encoded}"}}

        logger.info("Analyzing {} attachment ({} bytes)", mimetype, len(data))
        return await self._complete([{"type": "text", "text": prompt}, attachment])

    async def analyze_text(self, text: str, known_category_names: list[str]) -> ExpenseAnalysis | None:
        prompt = TEXT_PROMPT.format(categories=format_categories(known_category_names))
        logger.info("Analyzing transcribed text: {}", text)
        return await self._complete(
            [{"type": "text", "text": prompt}, {"type": "text", "text": text}]
        )

    async def transcribe_audio(self, data: bytes) -> str | None:
        if not data:
            return None
        try:
            transcription = await self.client.audio.transcriptions.create(
                model=self.transcription_model,
                file=("audio.ogg", data),
            )
        except OpenAIError as e:
            logger.error("Audio transcription failed: {}", e)
            raise UpstreamUnavailable("A transcrição de áudio está indisponível.") from e

        text = (transcription.text or "").strip()
        logger.info("Audio transcribed: {!r}", text)
        return text or None
