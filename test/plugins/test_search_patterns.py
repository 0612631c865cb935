"""
Test plugin for search_patterns tool.
"""
from plugins import TestPlugin, TestResult, tool_text
import json
import time


class TestSearchPatterns(TestPlugin):
    """Tests search_patterns by searching for a name taken from the overview."""

    tool_name = "search_patterns"
    description = "Verifies search finds a known resource first and rejects bad filters"
    depends_on = ["TestGetOverview"]
    run_after = []

    async def test(self, session) -> TestResult:
        start_time = time.time()

        try:
            overview = json.loads(tool_text(await session.call_tool("get_overview", arguments={})))
            name = overview["resources"][0]["name"]

            result = await session.call_tool("search_patterns", arguments={"query": name})
            if result.isError:
                return self.result(start_time, False, "search_patterns returned an error", error=tool_text(result))

            body = json.loads(tool_text(result))
            if not body["results"] or body["results"][0]["name"] != name:
                return self.result(start_time, False, f"Search for '{name}' did not rank it first")

            scores = [r["relevance"] for r in body["results"]]
            if scores != sorted(scores, reverse=True):
                return self.result(start_time, False, "Results are not ordered by relevance")

            bad = await session.call_tool("search_patterns", arguments={"query": name, "complexity": "extreme"})
            if not bad.isError:
                return self.result(start_time, False, "Invalid complexity filter was accepted")

            return self.result(start_time, True, f"Search for '{name}' returned {body['count']} result(s)")

        except Exception as e:
            return self.result(start_time, False, "Failed to search patterns", error=str(e))
