"""Unit tests for the layout engine."""

import pytest

from panessh.layout import (
    EVEN_HORIZONTAL,
    TILED,
    LayoutError,
    LayoutPolicy,
    PaneSet,
    layout,
    query_base_index,
)
from panessh.tmux import TmuxCommandError


class TestLayoutPolicy:
    """Tests for LayoutPolicy decisions."""

    def test_splitting_layout_switches_to_tiled_at_three_panes(self):
        policy = LayoutPolicy()
        assert policy.splitting_layout(2) == EVEN_HORIZONTAL
        assert policy.splitting_layout(3) == TILED
        assert policy.splitting_layout(10) == TILED

    def test_final_layout_by_host_count(self):
        policy = LayoutPolicy()
        assert policy.final_layout(1) is None
        assert policy.final_layout(2) == EVEN_HORIZONTAL
        assert policy.final_layout(3) == TILED
        assert policy.final_layout(8) == TILED

    def test_fixed_layout_overrides_final_pass_only(self):
        policy = LayoutPolicy.from_name("main-vertical")
        assert policy.final_layout(1) is None
        assert policy.final_layout(2) == "main-vertical"
        assert policy.final_layout(5) == "main-vertical"
        assert policy.splitting_layout(5) == TILED

    def test_from_name_auto(self):
        assert LayoutPolicy.from_name("auto") == LayoutPolicy()
        assert LayoutPolicy.from_name(None) == LayoutPolicy()

    def test_from_name_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown layout"):
            LayoutPolicy.from_name("spiral")


class TestPaneSet:
    """Tests for pane addressing."""

    def test_target_offsets_by_base_index(self):
        panes = PaneSet(window="web1-42", base_index=1, count=3)
        assert panes.target(0) == "web1-42.1"
        assert panes.target(2) == "web1-42.3"

    def test_target_out_of_range(self):
        panes = PaneSet(window="w", base_index=0, count=2)
        with pytest.raises(IndexError):
            panes.target(2)


class TestLayout:
    """Tests for layout() against the in-memory tmux server."""

    @pytest.mark.parametrize("host_count", [1, 2, 3, 4, 7, 12])
    def test_produces_exactly_one_pane_per_host(self, fake_tmux, host_count):
        fake_tmux.new_window("w")
        panes = layout(fake_tmux, "w", host_count)

        assert fake_tmux.pane_count("w") == host_count
        assert panes.count == host_count

    @pytest.mark.parametrize("base_index", [0, 1])
    def test_respects_base_index(self, fake_tmux, base_index):
        fake_tmux.base_index = base_index
        fake_tmux.new_window("w")

        panes = layout(fake_tmux, "w", 3)

        assert panes.base_index == base_index
        assert fake_tmux.list_panes("w") == [str(base_index + i) for i in range(3)]

    def test_placeholder_pane_is_removed(self, fake_tmux):
        fake_tmux.new_window("w")
        placeholder_id = fake_tmux.windows["w"][0]

        layout(fake_tmux, "w", 2)

        assert placeholder_id not in fake_tmux.windows["w"]

    def test_panes_keep_creation_order(self, fake_tmux):
        fake_tmux.new_window("w")
        placeholder_id = fake_tmux.windows["w"][0]

        layout(fake_tmux, "w", 4)

        ids = fake_tmux.windows["w"]
        assert ids == sorted(ids)
        assert all(pane_id > placeholder_id for pane_id in ids)

    def test_single_host_has_no_final_layout_pass(self, fake_tmux):
        fake_tmux.new_window("w")
        layout(fake_tmux, "w", 1)

        # Only the layout applied after the single split
        assert fake_tmux.layouts["w"] == [EVEN_HORIZONTAL]

    def test_two_hosts_end_even_horizontal(self, fake_tmux):
        fake_tmux.new_window("w")
        layout(fake_tmux, "w", 2)

        assert fake_tmux.layouts["w"] == [EVEN_HORIZONTAL, TILED, EVEN_HORIZONTAL]

    def test_four_hosts_end_tiled(self, fake_tmux):
        fake_tmux.new_window("w")
        layout(fake_tmux, "w", 4)

        assert fake_tmux.layouts["w"][0] == EVEN_HORIZONTAL
        assert fake_tmux.layouts["w"][1:] == [TILED] * 4

    def test_first_real_pane_selected(self, fake_tmux):
        fake_tmux.new_window("w")
        layout(fake_tmux, "w", 3)

        assert fake_tmux.active["w"] == 0
        assert fake_tmux.calls[-3][0] == "select_pane"

    def test_command_order(self, fake_tmux):
        fake_tmux.new_window("w")
        fake_tmux.calls.clear()

        layout(fake_tmux, "w", 2)

        assert fake_tmux.names() == [
            "display",
            "select_pane",
            "split_window",
            "select_layout",
            "split_window",
            "select_layout",
            "kill_pane",
            "select_pane",
            "select_layout",
            "list_panes",
        ]

    def test_zero_hosts_rejected(self, fake_tmux):
        fake_tmux.new_window("w")
        with pytest.raises(ValueError):
            layout(fake_tmux, "w", 0)

    def test_split_failure_aborts_sequence(self, fake_tmux):
        fake_tmux.new_window("w")
        fake_tmux.fail_on.add("split_window")

        with pytest.raises(TmuxCommandError):
            layout(fake_tmux, "w", 3)

        assert "kill_pane" not in fake_tmux.names()

    def test_pane_count_mismatch_raises(self, fake_tmux):
        fake_tmux.new_window("w")
        fake_tmux.list_panes = lambda window: ["0"]

        with pytest.raises(LayoutError, match="Expected 3 panes"):
            layout(fake_tmux, "w", 3)


class TestQueryBaseIndex:
    def test_non_numeric_index(self, fake_tmux):
        fake_tmux.new_window("w")
        fake_tmux.display = lambda target, fmt: "oops"

        with pytest.raises(LayoutError):
            query_base_index(fake_tmux, "w")
