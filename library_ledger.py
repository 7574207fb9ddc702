#!/usr/bin/env python3
"""
library_ledger.py

Inventory and lending ledger for a small library.

The librarian registers titles with a number of copies; patrons borrow and
return copies. The ledger enforces one active loan per title per patron and
never lets a title's available copies go below zero.

State lives in pandas DataFrames and is persisted to CSV files in a data
directory (books, title index and an append-only borrow log).

Typical usage:
    python library_ledger.py --data-dir data --librarian librarian
"""

from __future__ import annotations
import argparse
import dataclasses
import datetime
import enum
import logging
import pathlib
import threading
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

# Configuration
DEFAULT_DATA_DIR = pathlib.Path(__file__).resolve().parent / "data"
DEFAULT_LIBRARIAN = "librarian"
MIN_REGISTER_QUANTITY = 2
BOOKS_CSV = "book_records.csv"
TITLES_CSV = "title_index.csv"
BORROW_LOG_CSV = "borrow_log.csv"

BOOK_COLUMNS = ["Book ID", "Title", "Release Year", "Copies Available", "Availability"]
TITLE_COLUMNS = ["Title", "Book ID"]
LOG_COLUMNS = ["timestamp", "patron_id", "book_id", "action"]

# Logging
logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("LibraryLedger")


# ---------------- Errors ----------------
class LedgerError(Exception):
    """Base class for every rejected ledger operation."""


class Unauthorized(LedgerError):
    """Caller is not a librarian and tried a privileged operation."""


class InvalidQuantity(LedgerError):
    """Registration quantity is below the minimum."""


class InvalidIdentifier(LedgerError):
    """Book ID is not a positive integer."""


class BookUnavailable(LedgerError):
    """Title is unknown, out of copies, or currently borrowed."""


class AlreadyBorrowed(LedgerError):
    """Patron already holds a copy of the title."""


class NoActiveLoan(LedgerError):
    """Patron holds no loan for the title being returned."""


# ---------------- Data model ----------------
class AvailabilityState(str, enum.Enum):
    AVAILABLE = "Available"
    BORROWED = "Borrowed"


@dataclasses.dataclass(frozen=True)
class BookRecord:
    """Snapshot of a single catalog row."""

    title: str
    release_year: int
    copies_available: int
    state: AvailabilityState
    identifier: int


Authorizer = Callable[[str], bool]


def librarian_check(*identities: str) -> Authorizer:
    """
    Build the privileged-caller predicate for `LibrarySystem`.

    Args:
        identities: one or more caller identities allowed to register books.

    Returns:
        A callable answering whether a caller identity is a librarian.
    """
    if not identities:
        raise ValueError("at least one librarian identity is required")
    allowed = frozenset(identities)

    def is_librarian(caller: str) -> bool:
        return caller in allowed

    return is_librarian


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


# ---------------- Catalog ----------------
class Catalog:
    """
    Title index and book records, keyed by Book ID.

    Records are rows of `books_df` (indexed by "Book ID"); `_title_index` maps
    each registered title to the identifier it was last registered under.
    The catalog knows nothing about patrons. Its `lock` is shared with the
    `LendingLedger` so a borrow or return runs its checks and writes as one step.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.books_df = pd.DataFrame(columns=BOOK_COLUMNS[1:], index=pd.Index([], name="Book ID"))
        self._title_index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.books_df)

    def register(self, title: str, release_year: int, quantity: int, identifier: int) -> BookRecord:
        """
        Insert or overwrite the record for `identifier` and point `title` at it.

        Re-registering a title under another identifier replaces the title
        mapping; the old record stays reachable through its old Book ID only.

        Raises:
            InvalidQuantity: quantity is below MIN_REGISTER_QUANTITY.
            InvalidIdentifier: identifier is not a positive integer.
        """
        if quantity < MIN_REGISTER_QUANTITY:
            raise InvalidQuantity(f"Quantity must be at least {MIN_REGISTER_QUANTITY}, got {quantity}.")
        if isinstance(identifier, bool) or not isinstance(identifier, int) or identifier <= 0:
            raise InvalidIdentifier(f"Book ID must be a positive integer, got {identifier!r}.")

        with self.lock:
            previous = self._title_index.get(title)
            if previous is not None and previous != identifier:
                logger.warning("Title '%s' moved from Book ID %s to %s; old record is orphaned",
                               title, previous, identifier)
            self.books_df.loc[identifier] = [title, int(release_year), int(quantity),
                                             AvailabilityState.AVAILABLE.value]
            self._title_index[title] = identifier
            record = self.get(identifier)
        logger.info("Registered '%s' (%s) as Book ID %s with %d copies", title, release_year, identifier, quantity)
        return record

    def get(self, identifier: int) -> Optional[BookRecord]:
        if identifier not in self.books_df.index:
            return None
        row = self.books_df.loc[identifier]
        return BookRecord(title=str(row["Title"]),
                          release_year=int(row["Release Year"]),
                          copies_available=int(row["Copies Available"]),
                          state=AvailabilityState(row["Availability"]),
                          identifier=int(identifier))

    def find_by_title(self, title: str) -> Optional[int]:
        """Exact-match lookup; None when the title was never registered."""
        return self._title_index.get(title)

    def is_available(self, title: str) -> Tuple[bool, Optional[int]]:
        """
        Check whether a copy of `title` can be lent right now.

        Returns (available, identifier). The identifier is reported whenever
        the title is known, even if no copy is available.
        """
        identifier = self.find_by_title(title)
        if identifier is None:
            return False, None
        record = self.get(identifier)
        available = (record is not None
                     and record.title == title
                     and record.state is AvailabilityState.AVAILABLE
                     and record.copies_available >= 1)
        return available, identifier

    # Only called by LendingLedger after it has validated the operation.
    def decrement_availability(self, identifier: int) -> None:
        copies = int(self.books_df.at[identifier, "Copies Available"]) - 1
        self.books_df.at[identifier, "Copies Available"] = copies
        state = AvailabilityState.BORROWED if copies == 0 else AvailabilityState.AVAILABLE
        self.books_df.at[identifier, "Availability"] = state.value

    def increment_availability(self, identifier: int) -> None:
        copies = int(self.books_df.at[identifier, "Copies Available"]) + 1
        self.books_df.at[identifier, "Copies Available"] = copies
        self.books_df.at[identifier, "Availability"] = AvailabilityState.AVAILABLE.value

    # -------------- Frames ----------------
    def load(self, books_df: pd.DataFrame, titles_df: pd.DataFrame) -> None:
        """
        Replace the catalog contents with persisted frames.

        Args:
            books_df: frame with BOOK_COLUMNS.
            titles_df: frame with TITLE_COLUMNS.
        """
        books = books_df[BOOK_COLUMNS].copy()
        books["Book ID"] = books["Book ID"].astype(int)
        books["Release Year"] = books["Release Year"].astype(int)
        books["Copies Available"] = books["Copies Available"].astype(int)
        with self.lock:
            self.books_df = books.set_index("Book ID")
            self._title_index = {str(title): int(book_id)
                                 for title, book_id in zip(titles_df["Title"], titles_df["Book ID"])}

    def books_frame(self) -> pd.DataFrame:
        return self.books_df.rename_axis("Book ID").reset_index()[BOOK_COLUMNS]

    def titles_frame(self) -> pd.DataFrame:
        return pd.DataFrame(list(self._title_index.items()), columns=TITLE_COLUMNS)


# ---------------- Lending ----------------
class LendingLedger:
    """
    Per-patron loan sets and the borrow/return rules.

    Each patron's loans are an insertion-ordered dict of Book ID -> borrow
    timestamp, created on the patron's first successful borrow and kept
    (possibly empty) afterwards. Every successful borrow or return is also
    appended to `borrow_log_df`, which `replay` uses to rebuild the loans.
    """

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog
        self._loans: Dict[str, Dict[int, str]] = {}
        self.borrow_log_df = pd.DataFrame(columns=LOG_COLUMNS)

    def borrow(self, patron_id: str, title: str) -> int:
        """
        Lend one copy of `title` to `patron_id`.

        Availability and duplicate status are both evaluated before deciding;
        if both fail, the unavailable reason is reported.

        Returns:
            The Book ID that was lent.

        Raises:
            BookUnavailable: title unknown, borrowed out or out of copies.
            AlreadyBorrowed: the patron already holds this title.
        """
        with self.catalog.lock:
            available, identifier = self.catalog.is_available(title)
            duplicate = identifier is not None and identifier in self._loans.get(patron_id, {})

            if available and not duplicate:
                now = _utc_now()
                self.catalog.decrement_availability(identifier)
                self._loans.setdefault(patron_id, {})[identifier] = now
                self._append_log(now, patron_id, identifier, "borrow")
                logger.info("Borrowed %s ('%s') to %s", identifier, title, patron_id)
                return identifier
            if not available:
                logger.debug("Borrow rejected, '%s' unavailable for %s", title, patron_id)
                raise BookUnavailable(f"Book '{title}' is not available.")
            logger.debug("Borrow rejected, %s already holds '%s'", patron_id, title)
            raise AlreadyBorrowed(f"{patron_id} already has '{title}' borrowed.")

    def return_book(self, patron_id: str, title: str) -> int:
        """
        Take back the copy of `title` held by `patron_id`.

        The title is resolved through the title index, so a return does not
        depend on current availability. No upper bound is applied to the
        restored copy count.

        Returns:
            The Book ID that was returned.

        Raises:
            NoActiveLoan: the patron holds no loan for the title.
        """
        with self.catalog.lock:
            identifier = self.catalog.find_by_title(title)
            loan_set = self._loans.get(patron_id, {})
            if identifier is None or identifier not in loan_set:
                logger.debug("Return rejected, %s holds no loan for '%s'", patron_id, title)
                raise NoActiveLoan(f"{patron_id} does not have '{title}' borrowed.")

            self.catalog.increment_availability(identifier)
            del loan_set[identifier]
            self._append_log(_utc_now(), patron_id, identifier, "return")
        logger.info("Book %s ('%s') returned by %s", identifier, title, patron_id)
        return identifier

    def loans(self, patron_id: str) -> List[int]:
        return list(self._loans.get(patron_id, {}))

    def patrons(self) -> List[str]:
        return list(self._loans)

    def borrowed_count(self, identifier: int) -> int:
        return sum(1 for loan_set in self._loans.values() if identifier in loan_set)

    def replay(self, log_df: pd.DataFrame) -> None:
        """
        Rebuild the loan sets from a persisted borrow log.

        Rows are applied in file order; the log is append-only so that is the
        order the operations happened in. Malformed rows are skipped.
        """
        loans: Dict[str, Dict[int, str]] = {}
        for _, row in log_df.iterrows():
            patron_id = str(row.get("patron_id", "")).strip()
            book_id = str(row.get("book_id", "")).strip()
            action = str(row.get("action", "")).strip().lower()
            if not patron_id or not book_id.isdigit():
                continue
            loan_set = loans.setdefault(patron_id, {})
            if action == "borrow":
                loan_set.setdefault(int(book_id), str(row.get("timestamp", "")))
            elif action == "return":
                loan_set.pop(int(book_id), None)
        with self.catalog.lock:
            self._loans = loans
            self.borrow_log_df = log_df[LOG_COLUMNS].copy().reset_index(drop=True)

    def _append_log(self, timestamp: str, patron_id: str, identifier: int, action: str) -> None:
        self.borrow_log_df.loc[len(self.borrow_log_df)] = [timestamp, patron_id, identifier, action]


# ---------------- System ----------------
class LibrarySystem:
    """
    Entry point tying the catalog, the lending ledger and CSV persistence together.

    Registration is gated by the injected `is_librarian` predicate; borrowing,
    returning and lookups are open to any caller. State is loaded from the data
    directory on construction and written back by `save_state`.
    """

    def __init__(self,
                 data_dir: Optional[str] = None,
                 is_librarian: Optional[Authorizer] = None,
                 books_csv: str = BOOKS_CSV,
                 titles_csv: str = TITLES_CSV,
                 borrow_log_csv: str = BORROW_LOG_CSV):
        """
        Initialize the LibrarySystem.

        Args:
            data_dir: directory holding the CSV files; DEFAULT_DATA_DIR if omitted.
            is_librarian: privileged-caller predicate; defaults to DEFAULT_LIBRARIAN only.
            books_csv: file name of the book records CSV.
            titles_csv: file name of the title index CSV.
            borrow_log_csv: file name of the borrow/return log CSV.
        """
        self.data_dir = pathlib.Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
        self.books_csv = self.data_dir / books_csv
        self.titles_csv = self.data_dir / titles_csv
        self.borrow_log_csv = self.data_dir / borrow_log_csv

        self.is_librarian = is_librarian or librarian_check(DEFAULT_LIBRARIAN)
        self.catalog = Catalog()
        self.ledger = LendingLedger(self.catalog)

        self._load_catalog()
        self._load_borrow_log()

    # ---------------- Loading ----------------
    def _load_catalog(self) -> None:
        if not self.books_csv.exists():
            logger.warning("Books CSV not found: %s (starting empty)", self.books_csv)
            return
        books_df = pd.read_csv(self.books_csv, dtype={"Title": str}, keep_default_na=False)
        if self.titles_csv.exists():
            titles_df = pd.read_csv(self.titles_csv, dtype={"Title": str}, keep_default_na=False)
        else:
            # Without an index file every record owns its own title.
            logger.warning("Title index CSV not found: %s (rebuilding from books)", self.titles_csv)
            titles_df = books_df[TITLE_COLUMNS]
        self.catalog.load(books_df, titles_df)
        logger.info("Loaded %d books", len(self.catalog))

    def _load_borrow_log(self) -> None:
        if not self.borrow_log_csv.exists():
            return
        log_df = pd.read_csv(self.borrow_log_csv, dtype=str).fillna("")
        for col in LOG_COLUMNS:
            if col not in log_df.columns:
                log_df[col] = ""
        self.ledger.replay(log_df)
        logger.info("Loaded %d borrow-log entries", len(log_df))

    # ---------------- Persisting ----------------
    def save_state(self) -> None:
        """Write books, the title index and the borrow log to the data directory."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with self.catalog.lock:
            books_df = self.catalog.books_frame()
            titles_df = self.catalog.titles_frame()
            log_df = self.ledger.borrow_log_df.copy()
        books_df.to_csv(self.books_csv, index=False)
        titles_df.to_csv(self.titles_csv, index=False)
        log_df.to_csv(self.borrow_log_csv, index=False, columns=LOG_COLUMNS)
        logger.info("Saved %d books and %d borrow-log records to %s", len(books_df), len(log_df), self.data_dir)

    # ---------------- Core operations ----------------
    def register_book(self, caller: str, title: str, release_year: int, quantity: int,
                      identifier: int) -> BookRecord:
        """
        Register a title with `quantity` copies under `identifier`.

        Raises:
            Unauthorized: caller is not a librarian.
            InvalidQuantity, InvalidIdentifier: see `Catalog.register`.
        """
        if not self.is_librarian(caller):
            logger.debug("Registration of '%s' refused for %s", title, caller)
            raise Unauthorized(f"{caller} is not allowed to register books.")
        return self.catalog.register(title, release_year, quantity, identifier)

    def borrow_book(self, patron_id: str, title: str) -> int:
        return self.ledger.borrow(patron_id, title)

    def return_book(self, patron_id: str, title: str) -> int:
        return self.ledger.return_book(patron_id, title)

    # ---------------- Queries ----------------
    def find_book(self, title: str) -> Optional[int]:
        return self.catalog.find_by_title(title)

    def get_book(self, identifier: int) -> Optional[BookRecord]:
        return self.catalog.get(identifier)

    def loans(self, patron_id: str) -> List[int]:
        return self.ledger.loans(patron_id)

    # ---------------- Reports ----------------
    def patrons_with_loans(self) -> List[Dict]:
        """
        Return patrons who currently hold one or more books.

        Each entry has the patron ID and the Book IDs they hold, in borrow order.
        """
        result = []
        for patron_id in self.ledger.patrons():
            loans = self.ledger.loans(patron_id)
            if loans:
                result.append({"Patron ID": patron_id, "BorrowedBooks": loans})
        return result

    def export_report_books(self) -> pd.DataFrame:
        """Books inventory with a column counting copies currently on loan."""
        with self.catalog.lock:
            out = self.catalog.books_frame()
            out["On Loan"] = [self.ledger.borrowed_count(int(b)) for b in out["Book ID"]]
        return out


# ---------------- CLI ----------------
def input_prompt(prompt: str) -> str:
    """
    Wrapper around built-in input() that returns a stripped string and handles interrupts.

    Returns an empty string on EOF/KeyboardInterrupt.
    """
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return ""


def _parse_int(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        return None


def print_menu():
    print("\n--- Library Lending Ledger (CLI) ---")
    print("1. List all books")
    print("2. Look up book by title")
    print("3. Register title (librarian only)")
    print("4. Borrow book")
    print("5. Return book")
    print("6. Show a patron's loans")
    print("7. Show patrons with loans")
    print("8. Save state")
    print("0. Exit")


def cli_loop(lib: LibrarySystem):
    """
    Interactive command-loop for the lending ledger.

    Presents a text menu, reads choices with `input_prompt` and invokes
    `LibrarySystem` methods; rejected operations print the error message.
    """
    while True:
        print_menu()
        choice = input_prompt("Choose (0-8): ")
        if choice == "0":
            print("Exiting. You may save changes (option 8) before leaving.")
            break
        elif choice == "1":
            books = lib.export_report_books()
            print(f"\nTotal books: {len(books)}")
            for _, b in books.iterrows():
                print(f"{b['Book ID']}: {b['Title']} ({b['Release Year']}) | "
                      f"{b['Copies Available']} available | {b['Availability']}")
        elif choice == "2":
            title = input_prompt("Title: ")
            identifier = lib.find_book(title)
            record = lib.get_book(identifier) if identifier is not None else None
            if record is None:
                print(f"No book titled '{title}'.")
            else:
                print(f"{record.identifier}: {record.title} ({record.release_year}) | "
                      f"{record.copies_available} available | {record.state.value}")
        elif choice == "3":
            caller = input_prompt("Your identity: ")
            title = input_prompt("Title: ")
            year = _parse_int(input_prompt("Release year: "))
            quantity = _parse_int(input_prompt("Quantity: "))
            identifier = _parse_int(input_prompt("Book ID: "))
            if year is None or quantity is None or identifier is None:
                print("Release year, quantity and Book ID must be whole numbers.")
                continue
            try:
                lib.register_book(caller, title, year, quantity, identifier)
                print(f"Registered '{title}' as Book ID {identifier}.")
            except LedgerError as exc:
                print(f"Failed: {exc}")
        elif choice == "4":
            patron_id = input_prompt("Patron ID: ")
            title = input_prompt("Title: ")
            try:
                lib.borrow_book(patron_id, title)
                print(f"Book '{title}' issued to {patron_id}.")
            except LedgerError as exc:
                print(f"Failed: {exc}")
        elif choice == "5":
            patron_id = input_prompt("Patron ID: ")
            title = input_prompt("Title: ")
            try:
                lib.return_book(patron_id, title)
                print(f"Book '{title}' returned by {patron_id}.")
            except LedgerError as exc:
                print(f"Failed: {exc}")
        elif choice == "6":
            patron_id = input_prompt("Patron ID: ")
            loans = lib.loans(patron_id)
            print(f"{patron_id} holds {len(loans)} book(s): {loans}")
        elif choice == "7":
            patrons = lib.patrons_with_loans()
            print(f"\nPatrons with loans: {len(patrons)}")
            for p in patrons:
                print(f"{p['Patron ID']} -> {p['BorrowedBooks']}")
        elif choice == "8":
            lib.save_state()
            print(f"Saved state to {lib.data_dir}.")
        else:
            print("Unknown choice. Try again.")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Library lending ledger")
    parser.add_argument("--data-dir", default=str(DEFAULT_DATA_DIR), help="directory holding the CSV files")
    parser.add_argument("--librarian", action="append",
                        help=f"identity allowed to register titles (repeatable, default {DEFAULT_LIBRARIAN!r})")
    parser.add_argument("--no-save-prompt", action="store_true", help="exit without asking to save")
    args = parser.parse_args(argv)

    lib = LibrarySystem(data_dir=args.data_dir,
                        is_librarian=librarian_check(*(args.librarian or [DEFAULT_LIBRARIAN])))
    print(f"Welcome. Loaded {len(lib.catalog)} book(s) from {lib.data_dir}.")
    cli_loop(lib)
    if not args.no_save_prompt:
        ans = input_prompt("Save state before exit? (y/n): ")
        if ans.lower().startswith("y"):
            lib.save_state()
            print("Saved.")
    print("Goodbye.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
