"""
AI Classifier boundary
Sentiment / severity / category analysis, reply drafting and email triage
through an OpenAI-compatible chat completions endpoint (OpenRouter)
"""
import json
import logging
import re
from typing import Dict, Any, List, Optional

import openai
from openai import OpenAI
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from . import config
from .database.models import Sentiment, Severity
from .utils import (
    AuthenticationError, ClassifierError, RateLimitError, extract_json_object,
)

logger = logging.getLogger(__name__)


# =========================
# Prompts
# =========================
_CATEGORY_HELP = {
    "Product Quality": "issues with build, materials, durability, craftsmanship",
    "Product Performance": "doesn't work as expected, functionality issues",
    "Shipping & Delivery": "late delivery, damaged in transit, wrong item sent",
    "Packaging": "poor packaging, damaged box, missing components",
    "Customer Service": "support experience, response time, helpfulness",
    "Value & Pricing": "too expensive, not worth the price, pricing concerns",
    "Sizing & Fit": "wrong size, doesn't fit as described",
    "Color & Appearance": "color mismatch, looks different than photos",
    "Setup & Instructions": "difficult to assemble, poor instructions",
    "Compatibility": "doesn't work with other products/systems",
    "Safety Concern": "potential hazard, safety issue",
    "Praise & Satisfaction": "for positive reviews expressing general satisfaction",
}

ANALYZE_SYSTEM_PROMPT = (
    "You are an AI assistant analyzing customer reviews and complaints for an "
    "e-commerce business. Provide a comprehensive, detailed analysis of each review.\n\n"
    "Sentiment options: positive, negative, neutral\n"
    "Severity options: low (minor issue or praise), medium (moderate concern), "
    "high (serious problem), critical (urgent issue requiring immediate attention)\n\n"
    "Category MUST be one of these standardized values (choose the closest match):\n"
    + "\n".join(f'- "{name}" - {help_text}' for name, help_text in _CATEGORY_HELP.items())
    + "\n\nProvide detailed analysis with:\n"
    "- sentiment: overall sentiment (positive/negative/neutral)\n"
    "- severity: severity level (low/medium/high/critical)\n"
    "- category: MUST be one of the standardized categories listed above\n"
    "- reasoning: brief explanation of the analysis\n"
    "- specificIssues: array of specific problems mentioned\n"
    "- positiveAspects: array of positive things mentioned, if any\n"
    "- keyPhrases: 3-5 important quotes from the review (actual customer words)\n"
    "- customerEmotion: emotional tone (e.g. frustrated, disappointed, satisfied)\n"
    "- urgencyLevel: how quickly this needs attention\n"
    "- recommendedActions: 3-4 specific, actionable steps tailored to THIS review\n\n"
    "Respond ONLY with valid JSON format."
)

REPLY_SYSTEM_PROMPT = (
    "You are a professional customer service representative writing responses "
    "to customer reviews and complaints.\n"
    "Your tone should be empathetic, professional, solution-oriented and "
    "personalized to the customer and their specific concern.\n\n"
    "For positive reviews: Express gratitude and encourage continued engagement\n"
    "For negative reviews: Acknowledge the issue, apologize sincerely, and offer "
    "a concrete solution or next step\n"
    "For neutral reviews: Thank them for feedback and address any concerns mentioned"
)

EMAIL_SYSTEM_PROMPT = (
    "You are an AI assistant that classifies incoming emails to determine if they "
    "are customer reviews, complaints, or feedback about products/services.\n\n"
    "Reviews and complaints typically mention product quality, shipping or customer "
    "service experiences, express satisfaction or dissatisfaction with a purchase, "
    "request refunds, replacements or support, or include ratings.\n\n"
    "NOT reviews/complaints: newsletters, marketing emails, order confirmations, "
    "shipping notifications, password resets, spam.\n\n"
    "Respond in JSON format with: isReviewOrComplaint (boolean), confidence (0-100), "
    "reasoning (brief explanation), and suggestedAction (\"import\" or \"ignore\")."
)

PRODUCT_SYSTEM_PROMPT = (
    "You are an AI assistant that extracts product information from customer emails.\n\n"
    "Identify:\n"
    "1. The product name mentioned in the email\n"
    "2. A short product ID: lowercase, hyphenated, max 30 characters "
    "(e.g. \"blue-wireless-headphones\")\n\n"
    "If no specific product is mentioned, infer a general category such as "
    "\"shipping-issue\" or \"customer-service\"; for order questions use \"order-inquiry\".\n\n"
    "Respond in JSON format with: productName (string or null), productId (string or null), "
    "confidence (0-100), reasoning (brief explanation)."
)

_SLUG_RX = re.compile(r"[^a-z0-9-]")


def slugify_product_id(value: Optional[str]) -> Optional[str]:
    """Lowercase, replace anything outside [a-z0-9-] with '-', cap at 30 chars"""
    if not value:
        return None
    return _SLUG_RX.sub("-", str(value).lower())[:30]


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    if value:
        return [str(value)]
    return []


# =========================
# Classifier
# =========================
class ReviewClassifier:
    """Analyze reviews and draft replies through an OpenAI-compatible API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
        debug: bool = False
    ):
        """
        Initialize classifier

        Args:
            api_key: OpenRouter API key (uses config if None)
            model: Model name (uses config if None)
            base_url: API base URL (uses config if None)
            client: Pre-built client (tests)
            debug: Log raw model replies
        """
        self.api_key = api_key or config.AI_CONFIG["api_key"]
        self.model = model or config.AI_CONFIG["model"]
        self.base_url = base_url or config.AI_CONFIG["base_url"]
        self.debug = debug
        self._client = client

        logger.info(f"Classifier initialized with model: {self.model}")

    def is_configured(self) -> bool:
        return bool(self._client or self.api_key)

    @property
    def client(self) -> OpenAI:
        """
        Lazily build the API client

        Raises:
            AuthenticationError: If no API key is configured
        """
        if self._client is None:
            if not self.api_key:
                raise AuthenticationError(
                    "OpenRouter API key not configured. Set OPENROUTER_API_KEY."
                )
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                default_headers={
                    "HTTP-Referer": config.AI_CONFIG["app_referer"],
                    "X-Title": config.AI_CONFIG["app_title"],
                },
            )
        return self._client

    @retry(
        reraise=True,
        stop=stop_after_attempt(config.AI_CONFIG["max_retries"]),
        wait=wait_exponential(
            multiplier=1,
            min=config.AI_CONFIG["retry_min_wait"],
            max=config.AI_CONFIG["retry_max_wait"],
        ),
        retry=retry_if_exception_type(RateLimitError),
    )
    def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        """
        Run one chat completion and return the reply text

        Raises:
            AuthenticationError: Missing or rejected key
            RateLimitError: 429 (retried with exponential backoff)
            ClassifierError: Any other API or transport failure
        """
        client = self.client
        try:
            response = client.chat.completions.create(
                model=self.model,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.RateLimitError as e:
            logger.warning("Rate limit hit, retrying...")
            raise RateLimitError(str(e)) from e
        except openai.AuthenticationError as e:
            raise AuthenticationError(f"AI service rejected the API key: {e}") from e
        except openai.OpenAIError as e:
            raise ClassifierError(f"AI service error: {e}") from e

        if not response.choices:
            raise ClassifierError("AI service returned no choices")

        content = response.choices[0].message.content or ""
        if self.debug:
            logger.debug(f"Model reply: {content}")
        return content

    # =========================
    # Review Analysis
    # =========================
    @staticmethod
    def fallback_analysis(reason: str = "Failed to analyze review") -> Dict[str, Any]:
        """Safe defaults used whenever no usable analysis is available"""
        return {
            "sentiment": config.DEFAULT_SENTIMENT,
            "severity": config.DEFAULT_SEVERITY,
            "category": config.DEFAULT_CATEGORY,
            "reasoning": reason,
            "specific_issues": [],
            "positive_aspects": [],
            "key_phrases": [],
            "customer_emotion": "neutral",
            "urgency_level": "moderate",
            "recommended_actions": [],
        }

    @staticmethod
    def normalize_analysis(parsed: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce a raw model analysis onto the closed value sets"""
        category = str(parsed.get("category") or "").strip()
        if category not in config.REVIEW_CATEGORIES:
            matches = [c for c in config.REVIEW_CATEGORIES if c.lower() == category.lower()]
            category = matches[0] if matches else config.DEFAULT_CATEGORY

        return {
            "sentiment": Sentiment.coerce(parsed.get("sentiment"), Sentiment.NEUTRAL).value,
            "severity": Severity.coerce(parsed.get("severity"), Severity.MEDIUM).value,
            "category": category,
            "reasoning": str(parsed.get("reasoning") or ""),
            "specific_issues": _as_list(parsed.get("specificIssues")),
            "positive_aspects": _as_list(parsed.get("positiveAspects")),
            "key_phrases": _as_list(parsed.get("keyPhrases")),
            "customer_emotion": str(parsed.get("customerEmotion") or "neutral"),
            "urgency_level": str(parsed.get("urgencyLevel") or "moderate"),
            "recommended_actions": _as_list(parsed.get("recommendedActions")),
        }

    def analyze_review(
        self,
        content: str,
        customer_name: str = "Customer",
        marketplace: str = "Website",
        title: Optional[str] = None,
        rating: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Analyze one review

        An unparseable reply yields fallback_analysis(); service failures
        propagate so the caller can decide what to do with the review.

        Returns:
            Dict with sentiment, severity, category and the detail fields
        """
        lines = [f"Analyze this review from {customer_name} on {marketplace}:", ""]
        if title:
            lines.append(f"Title: {title}")
        if rating:
            lines.append(f"Rating: {rating}/5")
        lines += [
            f'"{content}"',
            "",
            "Provide your detailed analysis in JSON format with all fields: sentiment, "
            "severity, category, reasoning, specificIssues, positiveAspects, keyPhrases, "
            "customerEmotion, urgencyLevel, recommendedActions.",
        ]

        reply = self._complete(
            ANALYZE_SYSTEM_PROMPT,
            "\n".join(lines),
            temperature=config.AI_CONFIG["analyze_temperature"],
            max_tokens=config.AI_CONFIG["analyze_max_tokens"],
        )

        try:
            return self.normalize_analysis(extract_json_object(reply))
        except ValueError as e:
            logger.warning(f"Failed to parse AI analysis: {e}")
            return self.fallback_analysis()

    def generate_reply(
        self,
        content: str,
        customer_name: str,
        marketplace: str,
        sentiment: str = "neutral",
        severity: str = "medium"
    ) -> str:
        """Draft a 2-4 sentence customer-facing reply"""
        user_prompt = (
            f"Write a professional response to this {sentiment} review "
            f"(severity: {severity}) from {customer_name} on {marketplace}:\n\n"
            f'"{content}"\n\n'
            "Write a response that addresses their concern directly and professionally. "
            "Keep it concise (2-4 sentences)."
        )
        reply = self._complete(
            REPLY_SYSTEM_PROMPT,
            user_prompt,
            temperature=config.AI_CONFIG["reply_temperature"],
            max_tokens=config.AI_CONFIG["reply_max_tokens"],
        ).strip()
        if not reply:
            raise ClassifierError("AI service returned an empty reply")
        return reply

    # =========================
    # Email Triage
    # =========================
    def classify_email(self, subject: str, body: str, sender_name: str) -> Dict[str, Any]:
        """
        Decide whether an email is a review/complaint worth importing

        Returns:
            Dict with is_review_or_complaint, confidence (0-100), reasoning,
            suggested_action ("import" or "ignore")
        """
        user_prompt = (
            f"Classify this email from {sender_name}:\n\n"
            f'Subject: "{subject}"\n'
            f'Body: "{(body or "")[:500]}"\n\n'
            "Is this a customer review or complaint that should be imported into "
            "our review management system?"
        )
        reply = self._complete(
            EMAIL_SYSTEM_PROMPT,
            user_prompt,
            temperature=config.AI_CONFIG["email_temperature"],
            max_tokens=config.AI_CONFIG["email_max_tokens"],
        )
        try:
            parsed = extract_json_object(reply)
        except ValueError as e:
            logger.warning(f"Failed to parse email classification: {e}")
            return {
                "is_review_or_complaint": False,
                "confidence": 0,
                "reasoning": "Failed to classify email",
                "suggested_action": "ignore",
            }

        try:
            confidence = max(0, min(100, int(float(parsed.get("confidence") or 0))))
        except (TypeError, ValueError):
            confidence = 0
        action = str(parsed.get("suggestedAction") or "ignore").lower()
        return {
            "is_review_or_complaint": bool(parsed.get("isReviewOrComplaint")),
            "confidence": confidence,
            "reasoning": str(parsed.get("reasoning") or ""),
            "suggested_action": action if action in ("import", "ignore") else "ignore",
        }

    def extract_product(self, subject: str, body: str) -> Dict[str, Any]:
        """
        Extract the product an email talks about

        Returns:
            Dict with product_name, product_id (slug), confidence, reasoning
        """
        user_prompt = (
            "Extract product information from this customer email:\n\n"
            f'Subject: "{subject}"\n'
            f'Body: "{(body or "")[:1000]}"\n\n'
            "What product or service is this email about?"
        )
        reply = self._complete(
            PRODUCT_SYSTEM_PROMPT,
            user_prompt,
            temperature=config.AI_CONFIG["email_temperature"],
            max_tokens=config.AI_CONFIG["email_max_tokens"],
        )
        try:
            parsed = extract_json_object(reply)
        except ValueError as e:
            logger.warning(f"Failed to parse product extraction: {e}")
            return {
                "product_name": None,
                "product_id": None,
                "confidence": 0,
                "reasoning": "Failed to extract product information",
            }

        return {
            "product_name": parsed.get("productName") or None,
            "product_id": slugify_product_id(parsed.get("productId")),
            "confidence": parsed.get("confidence") or 0,
            "reasoning": str(parsed.get("reasoning") or ""),
        }


def analysis_details_json(analysis: Dict[str, Any]) -> str:
    """Serialize the non-enum parts of an analysis for ai_analysis_details"""
    extras = {
        k: v for k, v in analysis.items()
        if k not in ("sentiment", "severity", "category")
    }
    return json.dumps(extras, ensure_ascii=False)
