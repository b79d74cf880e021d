"""
GeoIP enrichment for login attempts using a MaxMind GeoLite2 City database.

Enrichment is best-effort: a missing database, a private address or a
failed lookup simply yields no location.
"""
import ipaddress
import logging
from pathlib import Path

import geoip2.database
from geoip2.errors import AddressNotFoundError
from maxminddb.errors import InvalidDatabaseError

from loginwatch.core.config import settings
from loginwatch.schemas.login_attempt import LocationInfo

logger = logging.getLogger(__name__)


class GeoIPService:
    """MaxMind GeoIP lookup service."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path or settings.GEOIP_DB_PATH)
        self._reader: geoip2.database.Reader | None = None

    def is_database_available(self) -> bool:
        """Check if the GeoIP database exists."""
        return self.db_path.exists()

    def _reload_reader(self):
        """Reload the database reader."""
        self.close()

        if self.is_database_available():
            try:
                self._reader = geoip2.database.Reader(str(self.db_path))
            except (OSError, InvalidDatabaseError) as e:
                logger.error(f"Failed to load GeoIP database: {e}")

    def _get_reader(self) -> geoip2.database.Reader | None:
        """Get or create the database reader."""
        if not self._reader and self.is_database_available():
            self._reload_reader()
        return self._reader

    def close(self):
        if self._reader:
            self._reader.close()
            self._reader = None

    def lookup(self, ip: str) -> LocationInfo | None:
        """
        Look up the location of an IP address.

        Args:
            ip: IP address to look up

        Returns:
            LocationInfo, or None for private addresses, unknown addresses or errors
        """
        if not self.is_public_ip(ip):
            return None

        reader = self._get_reader()
        if not reader:
            return None

        try:
            response = reader.city(ip)
        except AddressNotFoundError:
            return None
        except (ValueError, InvalidDatabaseError) as e:
            logger.warning(f"GeoIP lookup failed for {ip}: {e}")
            return None

        subdivision = response.subdivisions.most_specific if response.subdivisions else None
        return LocationInfo(
            country=response.country.name,
            city=response.city.name,
            region=subdivision.name if subdivision else None,
            timezone=response.location.time_zone,
        )

    def is_public_ip(self, ip: str) -> bool:
        """Check if an IP address is public (not private/reserved)."""
        try:
            addr = ipaddress.ip_address(ip)
            return addr.is_global
        except ValueError:
            return False


# Singleton instance
geoip_service = GeoIPService()
