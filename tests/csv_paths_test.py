import pathlib

import pandas as pd

from library_ledger import (
    BOOK_COLUMNS,
    LOG_COLUMNS,
    AvailabilityState,
    LibrarySystem,
    librarian_check,
)


def reopen(path: pathlib.Path) -> LibrarySystem:
    return LibrarySystem(data_dir=str(path), is_librarian=librarian_check("head-librarian"))


def test_csv_paths_live_in_data_dir(lib: LibrarySystem, tmp_path: pathlib.Path) -> None:
    assert lib.books_csv == tmp_path / "book_records.csv"
    assert lib.titles_csv == tmp_path / "title_index.csv"
    assert lib.borrow_log_csv == tmp_path / "borrow_log.csv"


def test_missing_files_start_empty(lib: LibrarySystem) -> None:
    assert len(lib.catalog) == 0
    assert lib.patrons_with_loans() == []


def test_save_writes_expected_columns(lib: LibrarySystem, dune: int) -> None:
    lib.borrow_book("patron-a", "Dune")
    lib.save_state()

    assert list(pd.read_csv(lib.books_csv).columns) == BOOK_COLUMNS
    assert list(pd.read_csv(lib.titles_csv).columns) == ["Title", "Book ID"]
    log = pd.read_csv(lib.borrow_log_csv)
    assert list(log.columns) == LOG_COLUMNS
    assert log["action"].tolist() == ["borrow"]


def test_state_survives_restart(lib: LibrarySystem, dune: int, tmp_path: pathlib.Path) -> None:
    lib.register_book("head-librarian", "Emma", 1815, 2, 7)
    lib.borrow_book("patron-a", "Dune")
    lib.borrow_book("patron-a", "Emma")
    lib.borrow_book("patron-b", "Emma")
    lib.return_book("patron-a", "Emma")
    lib.save_state()

    restored = reopen(tmp_path)

    assert restored.get_book(dune) == lib.get_book(dune)
    assert restored.get_book(7).copies_available == 1
    assert restored.get_book(7).state is AvailabilityState.AVAILABLE
    assert restored.loans("patron-a") == [dune]
    assert restored.loans("patron-b") == [7]

    restored.return_book("patron-b", "Emma")
    assert restored.get_book(7).copies_available == 2


def test_title_index_with_orphans_survives_restart(lib: LibrarySystem, dune: int, tmp_path: pathlib.Path) -> None:
    lib.register_book("head-librarian", "Dune", 1984, 4, 200)
    lib.save_state()

    restored = reopen(tmp_path)

    assert restored.find_book("Dune") == 200
    assert restored.get_book(dune).title == "Dune"
    assert restored.get_book(dune).copies_available == 3


def test_numeric_looking_title_stays_a_string(lib: LibrarySystem, tmp_path: pathlib.Path) -> None:
    lib.register_book("head-librarian", "1984", 1949, 2, 1984)
    lib.save_state()

    restored = reopen(tmp_path)

    assert restored.find_book("1984") == 1984
    assert restored.get_book(1984).title == "1984"
