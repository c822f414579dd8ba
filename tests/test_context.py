"""Tests for the context graph, integration toggling and the memory store."""

from jarvis_assistant.assistant.context import (
    build_context_graph,
    build_system_instruction,
    toggle_integration,
)
from jarvis_assistant.assistant.demo_data import SERVICE_SUMMARIES, demo_integrations
from jarvis_assistant.assistant.memory import MemoryStore
from jarvis_assistant.assistant.types import ServiceAccount, ServiceConnection


class TestContextGraph:
    def test_no_services_connected(self):
        graph = build_context_graph([ServiceConnection(id="calendar")])
        assert "No personal services are currently connected" in graph

    def test_connected_service_summary(self):
        graph = build_context_graph([ServiceConnection(id="calendar", connected=True)], (), SERVICE_SUMMARIES)
        assert "Design Review" in graph
        assert "No personal services" not in graph

    def test_disconnected_service_summary_is_hidden(self):
        graph = build_context_graph(
            [ServiceConnection(id="calendar", connected=True), ServiceConnection(id="smarthome")],
            (),
            SERVICE_SUMMARIES,
        )
        assert "Thermostat" not in graph

    def test_only_connected_email_accounts_are_listed(self):
        email = ServiceConnection(
            id="email",
            name="Email",
            connected=True,
            accounts=(ServiceAccount("personal@example.com", True), ServiceAccount("work@example.com", False)),
        )
        graph = build_context_graph([email])
        assert "- Connected Email accounts: personal@example.com\n" in graph
        assert "work@example.com" not in graph

    def test_memory_facts(self):
        graph = build_context_graph([], ["Prefers tea", "Lives in Lisbon"])
        assert "- Things you have learned about the user:\n  - Prefers tea\n  - Lives in Lisbon\n" in graph

    def test_system_instruction_uses_name(self):
        instruction = build_system_instruction([], assistant_name="Friday")
        assert instruction.startswith("You are Friday")
        assert "request_permission" in instruction


class TestToggleIntegration:
    def test_toggle_service(self):
        integrations = demo_integrations()
        updated = toggle_integration(integrations, "smarthome")
        assert next(s for s in updated if s.id == "smarthome").connected
        # Input is left untouched
        assert not next(s for s in integrations if s.id == "smarthome").connected

    def test_account_toggle_recomputes_connected(self):
        updated = toggle_integration(demo_integrations(), "email", "work@example.com")
        email = next(s for s in updated if s.id == "email")
        assert email.connected
        assert email.connected_account_ids() == ["work@example.com"]

        updated = toggle_integration(updated, "email", "work@example.com")
        email = next(s for s in updated if s.id == "email")
        assert not email.connected
        assert email.connected_account_ids() == []

    def test_unknown_service(self):
        integrations = demo_integrations()
        assert toggle_integration(integrations, "fax") == integrations


class TestMemoryStore:
    def test_dedupes_and_skips_blanks(self):
        memory = MemoryStore()
        memory.extend(["Likes jazz", "  Likes jazz ", "", "Has a cat"])
        assert memory.facts() == ["Likes jazz", "Has a cat"]
        assert len(memory) == 2

    def test_persists_to_file(self, tmp_path):
        path = tmp_path / "state" / "memory.json"
        MemoryStore(path).add("Works night shifts")

        assert path.exists()
        assert MemoryStore(path).facts() == ["Works night shifts"]

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "memory.json"
        path.write_text("{not json")
        memory = MemoryStore(path)
        assert memory.facts() == []

        memory.add("Allergic to peanuts")
        assert MemoryStore(path).facts() == ["Allergic to peanuts"]

    def test_facts_returns_a_copy(self):
        memory = MemoryStore(facts=["Runs marathons"])
        memory.facts().append("tampered")
        assert memory.facts() == ["Runs marathons"]
