"""
Test plugin for reading resources.
"""
from plugins import TestPlugin, TestResult
import time


class TestReadResource(TestPlugin):
    """Tests the resources/read endpoint for a known and an unknown name."""

    tool_name = "read_resource"
    description = "Verifies resources can be read and unknown names fail"
    depends_on = ["TestListResources"]
    run_after = []

    async def test(self, session) -> TestResult:
        start_time = time.time()

        try:
            listing = await session.list_resources()
            first = listing.resources[0]
            uri = str(first.uri)

            result = await session.read_resource(first.uri)
            if not result.contents or not result.contents[0].text:
                return self.result(start_time, False, f"{uri} returned no content")

            scheme = uri.split("://", 1)[0]
            try:
                await session.read_resource(f"{scheme}://resource/does-not-exist")
            except Exception:
                return self.result(start_time, True, f"Read {uri} ({len(result.contents[0].text)} chars)")

            return self.result(start_time, False, "Reading an unknown resource did not fail")

        except Exception as e:
            return self.result(start_time, False, "Failed to read resource", error=str(e))
