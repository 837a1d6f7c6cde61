"""
Contact resolution for the iMessage engine.

Turns raw handles (phone numbers, emails) into display names using the
macOS address book (PyObjC Contacts framework). Results are cached for
the life of the process, negative results included. Directory edits made
while the process runs are not seen until restart.
"""

import logging
import re
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fuzzywuzzy import fuzz

from .core.errors import CONTACTS_HELP
from .core.models import Contact
from .core.validation import MAX_PHONE_DIGITS, MIN_PHONE_DIGITS, is_email

logger = logging.getLogger(__name__)

PHONE_SHAPE = re.compile(r'^\+?[\d\s().\-]+$')


def looks_like_phone(identifier: Optional[str]) -> bool:
    """True for strings made only of digits and phone punctuation."""
    if not identifier:
        return False
    stripped = identifier.strip()
    return bool(PHONE_SHAPE.match(stripped)) and any(c.isdigit() for c in stripped)


def normalize_phone(phone: str) -> str:
    """
    Normalize a phone number to E.164-like form.

    Examples:
        "1234567890"      -> "+11234567890"
        "(123) 456-7890"  -> "+11234567890"
        "11234567890"     -> "+11234567890"
        "+441234567890"   -> "+441234567890"

    Normalizing an already normalized number returns it unchanged.
    """
    has_plus = phone.strip().startswith("+")
    digits = ''.join(c for c in phone if c.isdigit())

    if not digits:
        return ""

    if has_plus:
        return "+" + digits

    # North American numbers without the country code
    if len(digits) == 10:
        return "+1" + digits
    if len(digits) == 11 and digits[0] == "1":
        return "+" + digits

    return digits


def normalize_identifier(identifier: str) -> str:
    """Emails pass through untouched; everything else is phone-normalized."""
    identifier = identifier.strip()
    if is_email(identifier):
        return identifier
    return normalize_phone(identifier)


def validate_recipient(recipient: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Validate a send/schedule recipient.

    Accepts an email address, or a phone number with 10-15 digits.

    Returns:
        Tuple of (normalized_recipient, error_message).
    """
    if recipient is None or not str(recipient).strip():
        return None, "Missing required parameter: recipient"

    recipient = str(recipient).strip()
    if "\x00" in recipient:
        return None, "Invalid recipient: contains a NUL character"

    if is_email(recipient):
        return recipient, None

    digits = ''.join(c for c in recipient if c.isdigit())
    if not looks_like_phone(recipient) or not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        return None, (
            f"Invalid recipient '{recipient}': expected an email address or a phone "
            f"number with {MIN_PHONE_DIGITS}-{MAX_PHONE_DIGITS} digits"
        )

    return normalize_phone(recipient), None


class ContactCache:
    """
    Identifier -> display name cache, negative results included.

    Unbounded by default, so it grows with every distinct handle seen.
    Pass max_size to evict least-recently-used entries instead.
    """

    def __init__(self, max_size: int = 0):
        self.max_size = max_size
        self._entries: "OrderedDict[str, Optional[str]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Tuple[bool, Optional[str]]:
        """Return (cached, name). name is None for a cached negative result."""
        with self._lock:
            if key not in self._entries:
                self.misses += 1
                return False, None
            self.hits += 1
            if self.max_size:
                self._entries.move_to_end(key)
            return True, self._entries[key]

    def put(self, key: str, name: Optional[str]) -> None:
        with self._lock:
            self._entries[key] = name
            if self.max_size:
                self._entries.move_to_end(key)
                while len(self._entries) > self.max_size:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug(f"Evicted contact cache entry {evicted}")

    def known_contacts(self) -> List[Contact]:
        """Every positively resolved contact currently cached."""
        with self._lock:
            return [Contact(key, name) for key, name in self._entries.items() if name]

    def stats(self) -> Dict[str, int]:
        return {"size": len(self), "hits": self.hits, "misses": self.misses}

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _display_name(contact) -> str:
    full_name = " ".join(
        part for part in (contact.givenName() or "", contact.familyName() or "") if part
    )
    return full_name or contact.organizationName() or ""


class MacContactsDirectory:
    """
    Looks up display names in the macOS address book.

    Reads every contact once through the PyObjC Contacts framework
    (CNContactStore) and indexes them by normalized phone number and
    lowercased email, so "(415) 555-1234" stored in Contacts matches a
    "+14155551234" handle.

    Raises on failure (Contacts access denied, enumeration failed) so the
    resolver can tell "not found" apart from "could not ask". A failed
    load is retried on the next lookup.

    Args:
        contacts_store: CNContactStore to read from (default: a new store)
    """

    def __init__(self, contacts_store: Optional[Any] = None):
        self.contacts_store = contacts_store
        self._index: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    def fetch_all_contacts(self) -> List[Tuple[str, List[str], List[str]]]:
        """
        Fetch (name, phone numbers, emails) for every contact.

        Raises:
            RuntimeError: If Contacts access is denied or the fetch fails
        """
        import Contacts

        status = Contacts.CNContactStore.authorizationStatusForEntityType_(
            Contacts.CNEntityTypeContacts
        )
        if status == Contacts.CNAuthorizationStatusDenied:
            raise RuntimeError(f"Contacts access denied. {CONTACTS_HELP}")

        if self.contacts_store is None:
            self.contacts_store = Contacts.CNContactStore.alloc().init()

        keys_to_fetch = [
            Contacts.CNContactGivenNameKey,
            Contacts.CNContactFamilyNameKey,
            Contacts.CNContactOrganizationNameKey,
            Contacts.CNContactPhoneNumbersKey,
            Contacts.CNContactEmailAddressesKey,
        ]
        fetch_request = Contacts.CNContactFetchRequest.alloc().initWithKeysToFetch_(
            keys_to_fetch
        )

        contacts = []

        def contact_handler(contact, stop):
            try:
                phones = [
                    str(labeled.value().stringValue()) for labeled in contact.phoneNumbers()
                ]
                emails = [str(labeled.value()) for labeled in contact.emailAddresses()]
                contacts.append((_display_name(contact), phones, emails))
            except Exception as e:
                logger.error(f"Error processing contact: {e}")

        result = self.contacts_store.enumerateContactsWithFetchRequest_error_usingBlock_(
            fetch_request,
            None,
            contact_handler
        )
        # PyObjC returns (success, error) for the NSError** out-parameter
        success, error = result if isinstance(result, tuple) else (result, None)
        if not success:
            raise RuntimeError(f"Failed to fetch contacts: {error}")

        logger.info(f"Fetched {len(contacts)} contacts from macOS Contacts")
        return contacts

    def _load_index(self) -> Dict[str, str]:
        with self._lock:
            if self._index is None:
                index: Dict[str, str] = {}
                for name, phones, emails in self.fetch_all_contacts():
                    if not name:
                        continue
                    for phone in phones:
                        key = normalize_phone(phone)
                        if key:
                            index.setdefault(key, name)
                    for email in emails:
                        index.setdefault(email.strip().lower(), name)
                self._index = index
            return self._index

    def lookup(self, identifier: str, by_email: bool = False) -> Optional[str]:
        key = identifier.strip().lower() if by_email else normalize_phone(identifier)
        if not key:
            return None
        return self._load_index().get(key)


class FuzzyNameMatcher:
    """
    Fuzzy name matching for contact resolution.

    Handles typos, word order and partial names with a 0-1 score.
    """

    def __init__(self, threshold: float = 0.85):
        self.threshold = threshold

    def calculate_similarity(self, name1: str, name2: str) -> float:
        name1_norm = name1.lower().strip()
        name2_norm = name2.lower().strip()

        if name1_norm == name2_norm:
            return 1.0

        scores = [
            fuzz.token_sort_ratio(name1_norm, name2_norm),  # word order
            fuzz.token_set_ratio(name1_norm, name2_norm),   # extra middle names
            fuzz.partial_ratio(name1_norm, name2_norm),     # "John" vs "John Doe"
            fuzz.ratio(name1_norm, name2_norm),
        ]
        return max(scores) / 100.0

    def find_all_matches(
        self,
        query: str,
        contacts: Iterable[Contact],
        limit: int = 5
    ) -> List[Tuple[Contact, float]]:
        """Contacts scoring at or above the threshold, best first."""
        scored = [
            (contact, self.calculate_similarity(query, contact.name))
            for contact in contacts
            if contact.name
        ]
        matches = [(c, s) for c, s in scored if s >= self.threshold]
        matches.sort(key=lambda pair: pair[1], reverse=True)
        return matches[:limit]


class ContactResolver:
    """
    Resolves handles to names through a directory, with caching.

    Args:
        directory: Object with lookup(identifier, by_email) -> Optional[str]
        cache: ContactCache to use when a call does not supply its own
        max_workers: Fan-out width for enrich_with_names

    Example:
        resolver = ContactResolver(MacContactsDirectory())
        resolver.resolve("(415) 555-1234")  # -> "John Doe" or None
    """

    def __init__(
        self,
        directory: Optional[Any] = None,
        cache: Optional[ContactCache] = None,
        max_workers: int = 8,
    ):
        self.directory = directory or MacContactsDirectory()
        self.cache = cache if cache is not None else ContactCache()
        self.max_workers = max_workers
        self.matcher = FuzzyNameMatcher()

    def resolve(self, identifier: Optional[str], cache: Optional[ContactCache] = None) -> Optional[str]:
        """
        Resolve a handle to a display name.

        Any directory failure is cached as "no name" and never raised.
        Identifiers that are neither phone numbers nor emails (group chat
        ids such as "chat123456789") have no contact and are not looked up.
        """
        if not identifier:
            return None
        if not looks_like_phone(identifier) and not is_email(identifier):
            return None
        cache = cache if cache is not None else self.cache

        key = normalize_identifier(identifier)
        if not key:
            return None

        cached, name = cache.get(key)
        if cached:
            return name

        try:
            name = self.directory.lookup(key, by_email=is_email(key))
        except Exception as e:
            logger.warning(f"Contact lookup failed for {key}: {e}")
            name = None

        if name is None:
            logger.debug(f"No contact found for {key}")
        cache.put(key, name)
        return name

    def enrich_with_names(self, items: Sequence[Any], cache: Optional[ContactCache] = None) -> Sequence[Any]:
        """
        Attach contact_name to each item whose identifier resolves.

        Items need `identifier` and `contact_name` attributes. Distinct
        identifiers are resolved concurrently; items keep their order.
        """
        identifiers = list(dict.fromkeys(
            item.identifier for item in items if getattr(item, "identifier", None)
        ))
        if not identifiers:
            return items

        workers = max(1, min(self.max_workers, len(identifiers)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            names = dict(zip(
                identifiers,
                pool.map(lambda ident: self.resolve(ident, cache), identifiers),
            ))

        for item in items:
            name = names.get(getattr(item, "identifier", None))
            if name:
                item.contact_name = name
        return items

    def lookup_contact(self, identifier: str) -> Dict[str, Any]:
        """
        Resolve one identifier and report what happened.

        Returns:
            dict: {"identifier", "normalized", "name", "found"}
        """
        normalized = normalize_identifier(identifier)
        name = self.resolve(identifier)
        return {
            "identifier": identifier,
            "normalized": normalized,
            "name": name,
            "found": name is not None,
        }

    def validate_phone(self, identifier: str) -> Dict[str, Any]:
        """Report whether an identifier is a usable recipient."""
        normalized, error = validate_recipient(identifier)
        return {
            "input": identifier,
            "normalized": normalized,
            "valid": error is None,
            "is_email": is_email(identifier),
            "error": error,
        }

    def find_by_name(
        self,
        name: str,
        candidates: Optional[Iterable[Contact]] = None,
        limit: int = 5,
    ) -> List[Dict[str, Any]]:
        """
        Fuzzy-match a name against resolved contacts.

        Defaults to every contact already resolved in this process.
        """
        if candidates is None:
            candidates = self.cache.known_contacts()
        return [
            {**contact.to_dict(), "score": round(score, 2)}
            for contact, score in self.matcher.find_all_matches(name, candidates, limit)
        ]
