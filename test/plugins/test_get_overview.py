"""
Test plugin for get_overview tool.
"""
from plugins import TestPlugin, TestResult, tool_text
import json
import time


class TestGetOverview(TestPlugin):
    """Tests the get_overview tool."""

    tool_name = "get_overview"
    description = "Verifies the overview matches the resource listing"
    depends_on = ["TestListTools", "TestListResources"]
    run_after = []

    async def test(self, session) -> TestResult:
        start_time = time.time()

        try:
            result = await session.call_tool("get_overview", arguments={})
            if result.isError:
                return self.result(start_time, False, "get_overview returned an error", error=tool_text(result))

            overview = json.loads(tool_text(result))
            listing = await session.list_resources()

            total = overview["statistics"]["totalResources"]
            if total != len(listing.resources):
                return self.result(
                    start_time, False,
                    f"Overview counts {total} resources, listing has {len(listing.resources)}"
                )

            failed = overview["statistics"]["failedGroups"]
            return self.result(
                start_time, True,
                f"{overview['server']['name']}: {total} resources, "
                f"{overview['statistics']['categories']} categories, {failed} failed groups"
            )

        except Exception as e:
            return self.result(start_time, False, "Failed to get overview", error=str(e))
