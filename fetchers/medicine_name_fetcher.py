import logging
from typing import List
from urllib.parse import urlencode
from pydantic import ValidationError

from models.base_fetcher import BaseFetcher
from models.errors import MedicineNotFound, UpstreamPayloadError
from models.models import MedicineSuggestion

logger = logging.getLogger(__name__)


class MedicineNameFetcher(BaseFetcher):
    """Autocomplete lookup against the upstream `medicineName` endpoint."""

    vendor_id: str = "medicomp_names"
    max_retries: int = 1
    headers: dict = {"accept": "application/json"}

    def build_url(self, name: str) -> str:
        return f"{self.base_url.rstrip('/')}/medicineName?{urlencode({'q': name})}"

    async def search(self, name: str) -> List[MedicineSuggestion]:
        url = self.build_url(name)

        async with self.new_session() as s:
            resp = await self.fetch_with_retry(s, url, stream=False)
            try:
                data = resp.json()
            except ValueError as e:
                logger.error("Response error for %s: body is not JSON (%s)", name, e)
                raise UpstreamPayloadError("Failed to parse medicine data") from e

        if not data:
            logger.warning("No medicine found for %s", name)
            raise MedicineNotFound(name)

        if not isinstance(data, list):
            raise UpstreamPayloadError("Unexpected medicine data format")

        try:
            suggestions = [MedicineSuggestion.model_validate(entry) for entry in data]
        except ValidationError as e:
            logger.error("Response error for %s: %s", name, e.errors(include_url=False)[0]["msg"])
            raise UpstreamPayloadError("Unexpected medicine data format") from e

        logger.info("Data fetched successfully for: %s", name)
        return suggestions
