import socket
import time
from types import SimpleNamespace

import pytest

from tictac.errors import SessionError
from tictac.game import GameState, Player
from tictac.net import state_codec
from tictac.net.net import StreamLink
from tictac.net.protocol import Message
from tictac.session import Match, NetLinkState, NetworkPeer

X, O = Player.A, Player.B
_ = None


class FakePeer:
    def __init__(self, reliable: bool = True) -> None:
        self.link = SimpleNamespace(reliable=reliable)
        self.sent = []
        self.inbox = []
        self.error = None
        self.closed = False

    def send(self, msg) -> None:
        self.sent.append(msg)

    def try_get(self, timeout: float = 0.0):
        return self.inbox.pop(0) if self.inbox else None

    def close(self) -> None:
        self.closed = True


def payload(board, round_, current, active=True, winner=None) -> Message:
    state = GameState(board=list(board), round=round_, active=active, current_player=current, winner=winner)
    return Message.with_payload(state_codec.encode(state))


def host_after_first_move(peer: FakePeer) -> Match:
    match = Match(peer, X)
    assert match.place(4)
    match.handle_message(Message.accepted())
    return match


def test_local_match_alternates_players() -> None:
    match = Match()
    assert match.status_text() == "X to move"
    assert match.place(4)
    assert match.place(0)
    assert match.state.board[4] is X
    assert match.state.board[0] is O
    assert not match.place(8, O)
    assert match.restart()
    assert match.state == GameState()


def test_networked_match_requires_local_player() -> None:
    with pytest.raises(ValueError):
        Match(FakePeer())


def test_local_move_is_sent_and_waits_for_answer() -> None:
    peer = FakePeer()
    match = Match(peer, X)
    assert match.place(4)
    assert peer.sent == [Message.with_payload(state_codec.encode(match.state))]
    assert match.net_state is NetLinkState.WAITING
    assert match.status_text() == "Waiting for opponent to confirm..."
    assert not match.place(0)
    assert len(peer.sent) == 1


def test_joiner_cannot_move_first() -> None:
    peer = FakePeer()
    match = Match(peer, O)
    assert not match.place(4)
    assert not match.place(4, X)
    assert peer.sent == []
    assert match.status_text() == "Waiting for opponent..."


def test_accepted_returns_to_active() -> None:
    match = host_after_first_move(FakePeer())
    assert match.net_state is NetLinkState.ACTIVE
    assert match.state.round == 1
    assert not match.is_my_turn()


def test_rejected_rolls_back_the_move() -> None:
    match = Match(FakePeer(), X)
    match.place(4)
    match.handle_message(Message.rejected())
    assert match.state == GameState()
    assert match.net_state is NetLinkState.ACTIVE
    assert match.status_text() == "Move rejected by opponent"
    assert match.place(0)


def test_remote_move_is_adopted_and_acknowledged() -> None:
    peer = FakePeer()
    match = host_after_first_move(peer)
    match.handle_message(payload([O, _, _, _, X, _, _, _, _], 2, X))
    assert match.state.board[0] is O
    assert match.state.round == 2
    assert peer.sent[-1] == Message.accepted()
    assert match.is_my_turn()


def test_remote_move_while_waiting_settles_our_move() -> None:
    peer = FakePeer()
    match = Match(peer, X)
    match.place(4)
    match.handle_message(payload([O, _, _, _, X, _, _, _, _], 2, X))
    assert match.net_state is NetLinkState.ACTIVE
    assert match.state.round == 2


def test_duplicate_state_is_acknowledged_without_change() -> None:
    peer = FakePeer()
    match = host_after_first_move(peer)
    proposal = payload([O, _, _, _, X, _, _, _, _], 2, X)
    match.handle_message(proposal)
    adopted = match.state.copy()
    match.handle_message(proposal)
    assert match.state == adopted
    assert peer.sent[-2:] == [Message.accepted(), Message.accepted()]


def test_stale_state_is_dropped_silently() -> None:
    peer = FakePeer()
    match = host_after_first_move(peer)
    match.handle_message(payload([O, _, _, _, X, _, _, _, _], 2, X))
    match.place(8)
    sent = len(peer.sent)
    match.handle_message(payload([O, _, _, _, X, _, _, _, _], 2, X))
    match.handle_message(payload([_, _, _, _, X, _, _, _, _], 1, O))
    assert len(peer.sent) == sent
    assert match.state.round == 3


def test_illegal_remote_state_is_rejected() -> None:
    peer = FakePeer()
    match = host_after_first_move(peer)
    before = match.state.copy()
    match.handle_message(payload([O, O, _, _, X, _, _, _, _], 2, X))
    assert peer.sent[-1] == Message.rejected()
    assert match.state == before


def test_remote_move_out_of_turn_is_rejected() -> None:
    peer = FakePeer()
    match = Match(peer, X)
    match.handle_message(payload([O, _, _, _, _, _, _, _, _], 1, X))
    assert peer.sent == [Message.rejected()]
    assert match.state == GameState()


def test_malformed_state_ends_the_session() -> None:
    match = Match(FakePeer(), X)
    with pytest.raises(SessionError):
        match.handle_message(Message.with_payload(b"short"))


def test_poll_network_handles_one_message() -> None:
    peer = FakePeer()
    match = Match(peer, X)
    match.place(4)
    peer.inbox = [Message.accepted(), Message.handshake()]
    assert match.poll_network(0.0) == Message.accepted()
    assert match.net_state is NetLinkState.ACTIVE
    assert match.poll_network(0.0) == Message.handshake()
    assert peer.sent[-1] == Message.handshake_ack()
    assert match.poll_network(0.0) is None


def test_poll_network_raises_on_lost_link() -> None:
    peer = FakePeer()
    peer.error = ConnectionError("socket closed")
    match = Match(peer, X)
    with pytest.raises(SessionError):
        match.poll_network(0.0)


def test_unanswered_move_is_resent_on_lossy_link() -> None:
    now = [100.0]
    peer = FakePeer(reliable=False)
    match = Match(peer, X, clock=lambda: now[0])
    match.place(4)
    now[0] = 100.5
    match.tick()
    assert len(peer.sent) == 1
    now[0] = 101.0
    match.tick()
    assert peer.sent == [peer.sent[0]] * 2


def test_lossy_link_keeps_resending_until_peer_moves() -> None:
    now = [0.0]
    peer = FakePeer(reliable=False)
    match = Match(peer, X, clock=lambda: now[0])
    match.place(4)
    first = peer.sent[-1]
    match.handle_message(Message.accepted())
    assert match.net_state is NetLinkState.WAITING
    now[0] = 1.0
    match.tick()
    assert peer.sent[-1] == first

    match.handle_message(payload([O, _, _, _, X, _, _, _, _], 2, X))
    assert match.net_state is NetLinkState.ACTIVE
    sent = len(peer.sent)
    now[0] = 5.0
    match.tick()
    assert len(peer.sent) == sent


def test_late_duplicate_accept_does_not_stop_resending() -> None:
    now = [0.0]
    peer = FakePeer(reliable=False)
    match = Match(peer, X, clock=lambda: now[0])
    match.place(4)
    now[0] = 1.0
    match.tick()
    match.handle_message(Message.accepted())
    match.handle_message(payload([O, _, _, _, X, _, _, _, _], 2, X))
    assert match.place(8)
    third = peer.sent[-1]

    # answer to the resent first move, delivered after the peer already moved
    match.handle_message(Message.accepted())
    assert match.net_state is NetLinkState.WAITING
    now[0] = 2.5
    match.tick()
    assert peer.sent[-1] == third
    assert state_codec.decode(third.payload).round == 3


def test_reliable_link_never_resends() -> None:
    now = [0.0]
    peer = FakePeer(reliable=True)
    match = Match(peer, X, clock=lambda: now[0])
    match.place(4)
    now[0] = 10.0
    match.tick()
    assert len(peer.sent) == 1


def test_restart_is_local_only() -> None:
    match = Match(FakePeer(), X)
    match.place(4)
    assert not match.restart()
    assert match.state.round == 1


def test_networked_result_text() -> None:
    peer = FakePeer()
    host = Match(peer, X)
    host.game.state = GameState(board=[X, X, X, O, O, _, _, _, _], round=5, active=False, current_player=O, winner=X)
    joiner = Match(FakePeer(), O)
    joiner.game.state = host.state.copy()
    assert host.status_text() == "You win!"
    assert joiner.status_text() == "You lose"


def _pump(matches, until, seconds: float = 3.0) -> None:
    deadline = time.monotonic() + seconds
    while not until():
        assert time.monotonic() < deadline
        for match in matches:
            match.poll_network(0.01)


def test_two_matches_over_a_stream_link() -> None:
    left, right = socket.socketpair()
    host_peer = NetworkPeer(StreamLink(left))
    join_peer = NetworkPeer(StreamLink(right))
    host_peer.start()
    join_peer.start()
    host = Match(host_peer, X)
    joiner = Match(join_peer, O)
    try:
        assert host.place(4)
        _pump([host, joiner], lambda: host.net_state is NetLinkState.ACTIVE)
        assert joiner.state == host.state

        assert joiner.place(0)
        _pump([host, joiner], lambda: joiner.net_state is NetLinkState.ACTIVE)
        assert host.state == joiner.state
        assert host.state.round == 2
        assert host.is_my_turn()
    finally:
        host.close()
        joiner.close()
