"""
Tests for the card directory and card manager
"""

import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from card_banking.cards import (
    Card, CardDirectory, CardManager, CardStatus, CardView
)
from card_banking.encryption import CardNumberCipher
from card_banking.errors import (
    CardNotFoundError, ErrorKind, InvalidInputError, InvalidStateError,
    OwnershipError, StaleCardError
)
from card_banking.storage import InMemoryStorage, SQLiteStorage


VISA = "4111111111111111"
MASTERCARD = "5500000000000004"
DISCOVER = "6011111111111117"
EXPIRY = date(2030, 12, 31)


class TestCardDirectory:
    """Lookup and compare-and-swap persistence"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.cipher = CardNumberCipher("test-master-key")
        self.directory = CardDirectory(self.storage, self.cipher)
        self.manager = CardManager(self.directory, self.cipher)
        self.card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY, "100.00")

    def test_find_by_id(self):
        """Test card loads back by id"""
        found = self.directory.find_by_id(self.card.id)
        assert found == self.card
        assert found.balance == Decimal("100.00")

    def test_find_by_id_missing(self):
        """Test unknown card id raises not found"""
        with pytest.raises(CardNotFoundError) as exc_info:
            self.directory.find_by_id("missing")
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_find_by_plaintext_number(self):
        """Test lookup by plaintext number, with or without separators"""
        self.manager.issue_card("bob", MASTERCARD, "Bob Jones", EXPIRY)
        assert self.directory.find_by_plaintext_number(VISA).id == self.card.id
        assert self.directory.find_by_plaintext_number("4111 1111 1111 1111").id == self.card.id

    def test_find_by_plaintext_number_missing(self):
        """Test unknown or malformed number raises not found"""
        with pytest.raises(CardNotFoundError):
            self.directory.find_by_plaintext_number(DISCOVER)
        with pytest.raises(CardNotFoundError):
            self.directory.find_by_plaintext_number("not a number")

    def test_number_is_stored_encrypted(self):
        """Test persisted record holds only ciphertext"""
        raw = self.storage.load("cards", self.card.id)
        assert VISA not in str(raw)
        assert self.cipher.decrypt(raw["encrypted_number"]) == VISA

    def test_save_increments_version(self):
        """Test each save bumps the version by one"""
        assert self.card.version == 1
        saved = self.directory.save(replace(self.card, balance=Decimal("50.00")))
        assert saved.version == 2
        assert self.directory.find_by_id(self.card.id).balance == Decimal("50.00")

    def test_save_rejects_stale_snapshot(self):
        """Test saving an outdated copy raises a conflict and writes nothing"""
        self.directory.save(replace(self.card, balance=Decimal("50.00")))

        with pytest.raises(StaleCardError) as exc_info:
            self.directory.save(replace(self.card, balance=Decimal("10.00")))

        assert exc_info.value.kind == ErrorKind.CONFLICT
        assert exc_info.value.context["expected_version"] == 1
        assert exc_info.value.context["actual_version"] == 2
        assert self.directory.find_by_id(self.card.id).balance == Decimal("50.00")

    def test_list_by_owner(self):
        """Test owner listing is filtered and ordered by creation"""
        second = self.manager.issue_card("alice", MASTERCARD, "Alice Smith", EXPIRY)
        self.manager.issue_card("bob", DISCOVER, "Bob Jones", EXPIRY)

        cards = self.directory.list_by_owner("alice")
        assert [c.id for c in cards] == [self.card.id, second.id]
        assert self.directory.list_by_owner("nobody") == []

    def test_list_all(self):
        """Test list_all returns cards of every owner"""
        other = self.manager.issue_card("bob", MASTERCARD, "Bob Jones", EXPIRY)
        assert {c.id for c in self.directory.list_all()} == {self.card.id, other.id}


class TestCardManager:
    """Issuing cards, status changes and masked views"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.cipher = CardNumberCipher("test-master-key")
        self.directory = CardDirectory(self.storage, self.cipher)
        self.manager = CardManager(self.directory, self.cipher)

    def test_issue_card(self):
        """Test a new card is ACTIVE with the given fields"""
        card = self.manager.issue_card("alice", VISA, "  Alice Smith ", "2030-12-31", "250.50")
        assert isinstance(card, Card)
        assert card.status == CardStatus.ACTIVE
        assert card.owner_username == "alice"
        assert card.holder_name == "Alice Smith"
        assert card.expiry_date == EXPIRY
        assert card.balance == Decimal("250.50")

    def test_issue_card_default_balance(self):
        """Test balance defaults to zero"""
        card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY)
        assert card.balance == Decimal("0.00")

    def test_issue_card_rejects_duplicate_number(self):
        """Test the same number cannot be issued twice"""
        self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY)
        with pytest.raises(InvalidInputError):
            self.manager.issue_card("bob", "4111-1111-1111-1111", "Bob Jones", EXPIRY)

    def test_concurrent_issue_of_same_number(self):
        """Test racing issues of one number create a single card"""
        barrier = threading.Barrier(2)
        issued, rejected = [], []

        def issue(owner):
            barrier.wait()
            try:
                issued.append(self.manager.issue_card(owner, VISA, "Holder", EXPIRY))
            except InvalidInputError as e:
                rejected.append(e)

        threads = [threading.Thread(target=issue, args=(owner,)) for owner in ("alice", "bob")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(issued) == 1
        assert len(rejected) == 1
        assert self.storage.count("cards") == 1

    def test_issue_card_rejects_bad_input(self):
        """Test invalid number, balance, holder, owner and expiry"""
        with pytest.raises(InvalidInputError):
            self.manager.issue_card("alice", "4111111111111112", "Alice", EXPIRY)
        with pytest.raises(InvalidInputError):
            self.manager.issue_card("alice", VISA, "Alice", EXPIRY, "-1.00")
        with pytest.raises(InvalidInputError):
            self.manager.issue_card("alice", VISA, "", EXPIRY)
        with pytest.raises(InvalidInputError):
            self.manager.issue_card("", VISA, "Alice", EXPIRY)
        with pytest.raises(InvalidInputError):
            self.manager.issue_card("alice", VISA, "Alice", "31/12/2030")
        assert self.storage.count("cards") == 0

    def test_change_status(self):
        """Test administrative status change accepts enum or name"""
        card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY)
        blocked = self.manager.change_status(card.id, CardStatus.BLOCKED)
        assert blocked.status == CardStatus.BLOCKED
        assert blocked.version == card.version + 1

        unblocked = self.manager.change_status(card.id, "active")
        assert unblocked.status == CardStatus.ACTIVE

    def test_change_status_rejects_unknown_status(self):
        """Test unknown status name is invalid input"""
        card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY)
        with pytest.raises(InvalidInputError):
            self.manager.change_status(card.id, "FROZEN")

    def test_change_status_missing_card(self):
        """Test status change of an unknown card raises not found"""
        with pytest.raises(CardNotFoundError):
            self.manager.change_status("missing", CardStatus.BLOCKED)

    def test_views_are_masked(self):
        """Test list and get return masked numbers"""
        card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY, "10.00")
        views = self.manager.list_cards("alice")
        assert len(views) == 1
        assert isinstance(views[0], CardView)
        assert views[0].masked_number == "4111 **** **** 1111"
        assert views[0].balance == Decimal("10.00")

        view = self.manager.get_card(card.id, "alice")
        assert view.masked_number == "4111 **** **** 1111"

    def test_get_card_of_another_user(self):
        """Test owner restriction on get_card"""
        card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY)
        with pytest.raises(OwnershipError):
            self.manager.get_card(card.id, "bob")
        # No username means unrestricted access
        assert self.manager.get_card(card.id).id == card.id

    def test_list_all_cards(self):
        """Test administrative listing covers every owner, masked"""
        first = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY)
        second = self.manager.issue_card("bob", MASTERCARD, "Bob Jones", EXPIRY)

        views = self.manager.list_all_cards()
        assert [v.id for v in views] == [first.id, second.id]
        assert views[0].masked_number == "4111 **** **** 1111"
        assert views[1].masked_number == "5500 **** **** 0004"


class TestOwnerStatusRequests:
    """Block and unblock requests raised by the card owner"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.cipher = CardNumberCipher("test-master-key")
        self.directory = CardDirectory(self.storage, self.cipher)
        self.manager = CardManager(self.directory, self.cipher)
        self.card = self.manager.issue_card("alice", VISA, "Alice Smith", EXPIRY, "10.00")

    def test_request_block(self):
        """Test an ACTIVE card moves to PENDING_BLOCK"""
        requested = self.manager.request_block(self.card.id, "alice")
        assert requested.status == CardStatus.PENDING_BLOCK
        assert requested.version == self.card.version + 1
        assert self.directory.find_by_id(self.card.id).status == CardStatus.PENDING_BLOCK

    def test_request_block_of_blocked_card(self):
        """Test blocked or pending-block cards cannot be block-requested"""
        self.manager.change_status(self.card.id, CardStatus.BLOCKED)
        with pytest.raises(InvalidStateError) as exc_info:
            self.manager.request_block(self.card.id, "alice")
        assert exc_info.value.kind == ErrorKind.INVALID_STATE

        self.manager.change_status(self.card.id, CardStatus.PENDING_BLOCK)
        with pytest.raises(InvalidStateError):
            self.manager.request_block(self.card.id, "alice")

    def test_request_block_by_another_user(self):
        """Test only the owner can request a block"""
        with pytest.raises(OwnershipError):
            self.manager.request_block(self.card.id, "bob")
        assert self.directory.find_by_id(self.card.id).status == CardStatus.ACTIVE

    def test_request_block_missing_card(self):
        """Test block request for an unknown card raises not found"""
        with pytest.raises(CardNotFoundError):
            self.manager.request_block("missing", "alice")

    def test_request_unblock(self):
        """Test a BLOCKED card moves to PENDING_UNBLOCK"""
        self.manager.change_status(self.card.id, CardStatus.BLOCKED)
        requested = self.manager.request_unblock(self.card.id, "alice")
        assert requested.status == CardStatus.PENDING_UNBLOCK

    def test_request_unblock_of_active_card(self):
        """Test only BLOCKED cards can be unblock-requested"""
        with pytest.raises(InvalidStateError):
            self.manager.request_unblock(self.card.id, "alice")
        with pytest.raises(OwnershipError):
            self.manager.request_unblock(self.card.id, "bob")

    def test_total_balance_counts_active_cards(self):
        """Test total balance skips non-ACTIVE cards"""
        second = self.manager.issue_card("alice", MASTERCARD, "Alice Smith", EXPIRY, "5.50")
        self.manager.issue_card("alice", DISCOVER, "Alice Smith", EXPIRY, "100.00")
        self.manager.issue_card("bob", "4012888888881881", "Bob Jones", EXPIRY, "7.00")
        assert self.manager.total_balance("alice") == Decimal("115.50")

        self.manager.change_status(second.id, CardStatus.BLOCKED)
        assert self.manager.total_balance("alice") == Decimal("110.00")

    def test_total_balance_without_cards(self):
        """Test total balance of a user with no cards is zero"""
        total = self.manager.total_balance("nobody")
        assert total == Decimal("0.00")
        assert str(total) == "0.00"


class TestCardsOnSQLite:

    def test_round_trip_through_sqlite(self, tmp_path):
        """Test cards persist and reload through SQLite"""
        storage = SQLiteStorage(tmp_path / "cards.db")
        cipher = CardNumberCipher("test-master-key")
        directory = CardDirectory(storage, cipher)
        manager = CardManager(directory, cipher)

        card = manager.issue_card("alice", VISA, "Alice Smith", EXPIRY, "99.99")
        loaded = directory.find_by_plaintext_number(VISA)

        assert loaded == card
        assert loaded.balance == Decimal("99.99")
        storage.close()
