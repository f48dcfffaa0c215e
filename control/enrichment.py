"""
Enrichment Service (optional)

Drafts support replies, broadcasts and welcome messages through the Gemini
generateContent REST endpoint. Every call has a deterministic local
fallback; no exception leaves this module. Lifecycle operations never call
this service: callers request a draft separately and apply it afterwards.
"""

import logging
from typing import Optional

import requests

from control import config

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

NETWORK_NAME = "GhostLayer"
BROADCAST_TONES = ("urgent", "casual", "formal")


def fallback_reply() -> str:
    return "Thank you for your message. An admin will review it shortly."


def fallback_broadcast(topic: str) -> str:
    return f"📢 Announcement: {topic}"


def fallback_welcome(username: str) -> str:
    return f"Welcome {username}! We are excited to have you. Please wait for your unique access code."


class EnrichmentService:

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model or config.GEMINI_MODEL
        self.timeout = timeout or config.ENRICHMENT_TIMEOUT_SECONDS
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls) -> "EnrichmentService":
        return cls(api_key=config.GEMINI_API_KEY)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _generate(self, prompt: str) -> Optional[str]:
        """Return generated text, or None on any failure"""
        if not self.enabled:
            return None

        url = GEMINI_ENDPOINT.format(model=self.model)
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = self._session.post(
                url,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
            if response.status_code != 200:
                logger.warning(f"Enrichment request failed: status={response.status_code}")
                return None
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts).strip()
            return text or None
        except requests.exceptions.RequestException as e:
            logger.warning(f"Enrichment request error: {e}")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Enrichment response malformed: {e}")
        except Exception as e:
            logger.error(f"Enrichment error: {e}", exc_info=True)
        return None

    def suggest_reply(self, text: str) -> str:
        prompt = (
            f'You are a support bot for a VPN service. A user said: "{text}". '
            "Draft a polite, professional, and concise response (max 1 sentence) acknowledging the issue."
        )
        return self._generate(prompt) or fallback_reply()

    def draft_broadcast(self, topic: str, tone: str = "formal") -> str:
        if tone not in BROADCAST_TONES:
            tone = "formal"
        prompt = (
            "Write a short, engaging Telegram-style announcement message (under 300 characters) for VPN bot users.\n"
            f"Topic: {topic}\n"
            f"Tone: {tone}\n"
            f'Context: This is for the "{NETWORK_NAME}" network. Use suitable emojis. '
            "Do not use markdown bolding (like **text**), use plain text or caps for emphasis."
        )
        return self._generate(prompt) or fallback_broadcast(topic)

    def draft_welcome(self, username: str) -> str:
        prompt = (
            f'Generate a short, cyberpunk-style, mysterious but welcoming message for a new user named "{username}" '
            f'joining an exclusive private network called "{NETWORK_NAME}". Keep it under 200 characters.'
        )
        return self._generate(prompt) or fallback_welcome(username)

    def close(self):
        self._session.close()
