"""
Shared fixtures: in-memory catalog, sample feed documents, settings.
"""

import logging
from pathlib import Path

import pytest

from feedsync.catalog.models import Barcode, FeedRecord
from feedsync.catalog.store import DuckDBCatalogStore
from feedsync.config.settings import FeedSettings, Settings, SourceSettings, WorkerSettings

SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<TobaccoData>
  <Groups>
    <Group code="01" description="Cigarettes">
      <Articles>
        <Article code="1001" oldCode="" description="Red 20" price="12,50" disbarred="0">
          <Barcodes>
            <Barcode quantity="1" value="8000000000011"/>
          </Barcodes>
        </Article>
        <Article code="1002" oldCode="0902" description="Blue 20" price="1.234,50" disbarred="0">
          <Barcodes>
            <Barcode quantity="1" value="8000000000028"/>
            <Barcode quantity="10" value="8000000000035"/>
          </Barcodes>
        </Article>
      </Articles>
    </Group>
    <Group code="02" description="Cigars">
      <Articles>
        <Article code="2001" oldCode="" description="Robusto" disbarred="0"/>
        <Article code="" oldCode="2000" description="Old Corona" price="5,00" disbarred="1"/>
      </Articles>
    </Group>
  </Groups>
</TobaccoData>
"""


def make_record(
    code: str = "1001",
    *,
    old_code: str = "",
    description: str = "Red 20",
    price: int | None = 1250,
    disbarred: str = "0",
    group_code: str = "01",
    group_description: str = "Cigarettes",
    barcodes: dict[str, int] | None = None,
) -> FeedRecord:
    """Build a FeedRecord; ``barcodes`` maps value -> quantity."""
    if barcodes is None:
        barcodes = {"8000000000011": 1}
    return FeedRecord(
        code=code,
        old_code=old_code,
        description=description,
        price=price,
        disbarred=disbarred,
        group_code=group_code,
        group_description=group_description,
        barcodes=tuple(Barcode(value=v, quantity=q) for v, q in barcodes.items()),
    )


@pytest.fixture
def store():
    catalog = DuckDBCatalogStore(":memory:")
    catalog.initialize()
    yield catalog
    catalog.close()


@pytest.fixture
def feed_file(tmp_path: Path) -> Path:
    path = tmp_path / "TobaccoData.xml"
    path.write_text(SAMPLE_FEED, encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        source=SourceSettings(host="ftp.example.com", username="feed", password="secret"),
        feed=FeedSettings(work_dir=str(tmp_path / "work")),
        worker=WorkerSettings(high_water=4, low_water=1, poll_interval_s=0.01),
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture(autouse=True)
def reset_feedsync_logger():
    """Undo handlers/propagation that CLI runs install on the ``feedsync`` logger."""
    yield
    logger = logging.getLogger("feedsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
