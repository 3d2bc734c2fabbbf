"""Clients for the catalog and official card sources."""

from fftcg_sync.ingestion.square_enix_client import OfficialCardClient
from fftcg_sync.ingestion.tcgcsv_client import TcgcsvClient

__all__ = ["OfficialCardClient", "TcgcsvClient"]
