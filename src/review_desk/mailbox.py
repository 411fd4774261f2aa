"""
Mailbox adapter
Validates inbound emails, groups them into conversation threads and maps
each thread's opening message onto an IntermediateRecord (marketplace
"Mailbox"). An optional AI gate drops threads that are not reviews or
complaints and tags the rest with the product they mention.
"""
import base64
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple

from pydantic import ValidationError as SchemaError

from .database.models import Marketplace
from .schemas import IntermediateRecord, MailboxMessage
from .utils import ExternalServiceError

logger = logging.getLogger(__name__)

_REPLY_PREFIX_RX = re.compile(r"^(Re|Fwd|Fw):\s*", re.I)
THREAD_ID_LENGTH = 32


# =========================
# Threading
# =========================
def strip_reply_prefixes(subject: str) -> str:
    """Remove any number of leading Re:/Fwd:/Fw: prefixes (case kept)"""
    text = (subject or "").strip()
    prev = None
    while prev != text:
        prev = text
        text = _REPLY_PREFIX_RX.sub("", text).strip()
    return text


def normalize_subject(subject: str) -> str:
    return strip_reply_prefixes(subject).lower()


def generate_thread_id(message: MailboxMessage) -> str:
    """
    Thread id in priority order: provider thread id, In-Reply-To,
    Message-ID, then a base64 digest of subject + sender + message id
    """
    if message.thread_id:
        return message.thread_id
    if message.in_reply_to:
        return message.in_reply_to
    if message.message_id:
        return message.message_id

    composite = f"{normalize_subject(message.subject)}:{message.sender.email}:{message.id}"
    return base64.b64encode(composite.encode("utf-8")).decode("ascii")[:THREAD_ID_LENGTH]


@dataclass
class EmailThread:
    """A conversation: messages newest first"""
    thread_id: str
    subject: str
    messages: List[MailboxMessage]
    last_received_at: datetime
    unread_count: int

    @property
    def opening_message(self) -> MailboxMessage:
        return self.messages[-1]


def validate_messages(raw_messages: List[Dict[str, Any]]) -> Tuple[List[MailboxMessage], int]:
    """
    Validate provider messages

    Returns:
        (valid messages, invalid count)
    """
    valid = []
    invalid = 0
    for i, raw in enumerate(raw_messages or []):
        try:
            valid.append(MailboxMessage.model_validate(raw))
        except SchemaError as e:
            invalid += 1
            logger.warning(f"Invalid email record #{i}: {e.errors()[0].get('msg')}")
    return valid, invalid


def _sort_key(moment: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def group_threads(messages: List[MailboxMessage]) -> List[EmailThread]:
    """Group messages into threads; threads sorted by latest message, newest first"""
    buckets: Dict[str, List[MailboxMessage]] = {}
    for message in messages:
        buckets.setdefault(generate_thread_id(message), []).append(message)

    threads = []
    for thread_id, items in buckets.items():
        items = sorted(items, key=lambda m: _sort_key(m.received_at), reverse=True)
        threads.append(EmailThread(
            thread_id=thread_id,
            subject=strip_reply_prefixes(items[0].subject),
            messages=items,
            last_received_at=items[0].received_at,
            unread_count=sum(1 for m in items if not m.read),
        ))

    threads.sort(key=lambda t: _sort_key(t.last_received_at), reverse=True)
    return threads


# =========================
# Mapping
# =========================
def thread_to_record(
    thread: EmailThread,
    product_id: Optional[str] = None,
    product_name: Optional[str] = None
) -> IntermediateRecord:
    """Map a thread's opening message onto an intermediate review record"""
    message = thread.opening_message
    sender = message.sender
    return IntermediateRecord(
        marketplace=Marketplace.MAILBOX.value,
        title=thread.subject or None,
        content=message.body,
        customer_name=sender.name or sender.email.split("@", 1)[0],
        customer_email=sender.email,
        created_at=message.received_at,
        external_review_id=message.id,
        product_id=product_id,
        product_name=product_name,
    )


@dataclass
class MailboxResult:
    records: List[IntermediateRecord] = field(default_factory=list)
    threads: List[EmailThread] = field(default_factory=list)
    malformed: int = 0
    ignored: int = 0


def collect_mailbox_records(
    raw_messages: List[Dict[str, Any]],
    classifier=None,
    use_ai_filter: bool = False,
    min_confidence: int = 50
) -> MailboxResult:
    """
    Turn raw inbox messages into intermediate records, one per thread

    Args:
        raw_messages: Provider message dicts
        classifier: ReviewClassifier used for the AI gate and product tagging
        use_ai_filter: Skip threads the classifier says to ignore
        min_confidence: Minimum confidence for an "import" verdict

    A failing AI call never drops a thread: it is imported untagged.
    """
    messages, malformed = validate_messages(raw_messages)
    result = MailboxResult(threads=group_threads(messages), malformed=malformed)

    for thread in result.threads:
        opening = thread.opening_message
        product_id = product_name = None

        if classifier is not None and use_ai_filter:
            try:
                verdict = classifier.classify_email(
                    opening.subject, opening.body, opening.sender.name or opening.sender.email
                )
                if verdict["suggested_action"] != "import" or verdict["confidence"] < min_confidence:
                    result.ignored += 1
                    logger.info(f"Thread {thread.thread_id} ignored: {verdict['reasoning']}")
                    continue

                product = classifier.extract_product(opening.subject, opening.body)
                product_id = product["product_id"]
                product_name = product["product_name"]
            except ExternalServiceError as e:
                logger.warning(f"Email triage failed for thread {thread.thread_id}, importing anyway: {e}")

        result.records.append(thread_to_record(thread, product_id, product_name))

    logger.info(
        f"Mailbox: {len(result.threads)} thread(s), {len(result.records)} record(s), "
        f"{result.ignored} ignored, {result.malformed} invalid"
    )
    return result
