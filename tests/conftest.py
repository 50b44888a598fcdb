import pytest

import selectorscan


@pytest.fixture(autouse=True, scope="session")
def _warm_keccak_backend():
    # eth-hash loads its backend lazily, and pycryptodome's loader shells out via
    # subprocess; initialise it before any test monkeypatches subprocess.run.
    selectorscan.keccak_digest("")
