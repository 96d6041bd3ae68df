import logging.config

from radiokit_metadata.config import ListenerConfig
from radiokit_metadata.listener import MetadataListener
from radiokit_metadata.transport.phoenix import SocketConfig


def test_defaults():
    cfg = ListenerConfig()
    assert cfg.position_interval == 1000
    assert cfg.socket == SocketConfig()
    logging.config.dictConfig(cfg.logging)


def test_listener_from_config():
    listener = MetadataListener.from_config(
        ListenerConfig(access_token="abc", channel_id="kexp", position_interval=500)
    )
    assert listener.get_position_interval() == 500
