from fastapi import Request

from bingo_relay.services.relay_system import RelaySystem


def get_relay_system(request: Request) -> RelaySystem:
    return request.app.state.relay_system
