"""
Tests for the sample data loader script.
"""
import pytest

from scripts.load_sample_data import SAMPLE_INITIATIVES, load_initiatives, main
from tests.fakes import ScriptedIndex


class TestLoadInitiatives:

    @pytest.mark.asyncio
    async def test_upserts_each_sample(self):
        index = ScriptedIndex()
        assert await load_initiatives(index, SAMPLE_INITIATIVES) == 3
        assert [point_id for point_id, _, _ in index.upserts] == ["sample_1", "sample_2", "sample_3"]
        assert index.upserts[0][1].startswith("Implement AI-Powered Customer Support\n")


class TestCommandLine:

    def test_memory_backend_flag_rejected(self):
        with pytest.raises(SystemExit) as exc:
            main(["--backend", "memory"])
        assert exc.value.code == 2

    def test_memory_backend_from_environment_rejected(self, monkeypatch):
        monkeypatch.setenv("VECTOR_BACKEND", "memory")
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2
