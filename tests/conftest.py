import pathlib

import pytest

from library_ledger import Catalog, LendingLedger, LibrarySystem, librarian_check

LIBRARIAN = "head-librarian"


@pytest.fixture()
def catalog() -> Catalog:
    return Catalog()


@pytest.fixture()
def ledger(catalog: Catalog) -> LendingLedger:
    return LendingLedger(catalog)


@pytest.fixture()
def lib(tmp_path: pathlib.Path) -> LibrarySystem:
    return LibrarySystem(data_dir=str(tmp_path), is_librarian=librarian_check(LIBRARIAN))


@pytest.fixture()
def dune(lib: LibrarySystem) -> int:
    lib.register_book(LIBRARIAN, "Dune", 1965, 3, 100)
    return 100
