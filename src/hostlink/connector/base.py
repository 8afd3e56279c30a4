import logging
from abc import abstractmethod

from hostlink.conduit.base import ChannelState, Conduit
from hostlink.errors import ConnectionClosedError, ConnectionNotConnectedError, ConnectorError
from hostlink.support.events import EventSource

logger = logging.getLogger(__name__)

__all__ = ['ConnectorError', 'ConnectionNotConnectedError', 'ConnectionClosedError', 'ConnectorEvent',
           'ConnectorConnectedEvent', 'ConnectorDisconnectedEvent', 'Connector', 'AbstractConnector',
           'ConnectorContextManager']


class ConnectorEvent:
    """ base class for connector events. """
    def __init__(self, connector):
        self.connector = connector


class ConnectorConnectedEvent(ConnectorEvent):
    """ The connector was connected. """


class ConnectorDisconnectedEvent(ConnectorEvent):
    """ The connector was disconnected. """


class Connector:
    """ A connector describes an endpoint to which a conduit can be established. """

    def __init__(self):
        self.events = EventSource()

    @property
    @abstractmethod
    def endpoint(self):
        """ the endpoint that this connector reaches out to """
        raise NotImplementedError

    @property
    @abstractmethod
    def connected(self) -> bool:
        """
        Determines if this connector is connected to its underlying resource.
        :return: True if this connector is connected to it's underlying resource. False otherwise.
        :rtype: bool
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def conduit(self) -> Conduit:
        """
        Retrieves the conduit for this connection.
        If the connection is not connected, raises ConnectionNotConnectedError
        """
        raise ConnectionNotConnectedError

    @property
    @abstractmethod
    def available(self) -> bool:
        """ Determines if the underlying resource for this connector is available.
        :return: True if the resource is available and can be connected to.
        :rtype: bool
        """
        raise NotImplementedError

    @abstractmethod
    def connect(self):
        """
        Connects this connector to the underlying resource.
        If the connection is already connected, this method returns silently.
        Raises ConnectorError if the connection cannot be established.
        """
        raise NotImplementedError

    @abstractmethod
    def disconnect(self):
        raise NotImplementedError


class AbstractConnector(Connector):
    """
    Manages the connection cycle to an endpoint: UNCONNECTED, CONNECTING, OPEN and finally CLOSED.
    A connector that has been disconnected is closed for good and cannot be connected again. The same
    holds once its conduit has been closed directly.
    """

    def __init__(self):
        super().__init__()
        self._conduit = None
        self._state = ChannelState.UNCONNECTED

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def available(self):
        return False if self.connected or self._state is ChannelState.CLOSED else self._try_available()

    @property
    def connected(self):
        return self._conduit is not None and self._connected()

    def connect(self):
        if self.connected:
            return
        if self._conduit is not None:
            # the conduit was closed directly rather than through disconnect()
            self.disconnect()
        if self._state is ChannelState.CLOSED:
            raise ConnectionClosedError("connection to %s is closed" % (self.endpoint,))
        if not self.available:
            raise ConnectorError("connection to %s is not available" % (self.endpoint,))

        self._state = ChannelState.CONNECTING
        try:
            self._conduit = self._connect()
            self._state = ChannelState.OPEN
        finally:
            if not self._conduit:
                self._state = ChannelState.UNCONNECTED
        self.events.fire(ConnectorConnectedEvent(self))

    def disconnect(self):
        """ closes the conduit. The connector cannot be used again. """
        conduit = self._conduit
        self._state = ChannelState.CLOSED
        if conduit is None:
            return
        self._conduit = None
        self._disconnect()
        conduit.close()
        self.events.fire(ConnectorDisconnectedEvent(self))

    @abstractmethod
    def _connect(self) -> Conduit:
        """ Template method for subclasses to perform the connection.
            If connection is not possible, an exception should be thrown
        """
        raise NotImplementedError

    @abstractmethod
    def _try_available(self):
        """ Determine if this connection is available. This method is only called when
            the connection is disconnected.
        :return: True if the connection is available or False otherwise.
        :rtype: bool
        """
        raise NotImplementedError

    @abstractmethod
    def _disconnect(self):
        """ perform any actions needed on disconnection.
        The base class takes care of closing the conduit, which happens
        after this method has been called.
        """
        raise NotImplementedError

    def _connected(self):
        return self._conduit is not None and self._conduit.open

    @property
    def conduit(self) -> Conduit:
        """
        Retrieves the conduit for this connection.
        raises ConnectionNotConnectedError if not connected
        """
        self.check_connected()
        return self._conduit

    def check_connected(self):
        if self._conduit is None:
            raise ConnectionNotConnectedError("not connected to %s" % (self.endpoint,))


class ConnectorContextManager:
    """
    Opens the connector on entry, and closes it on exit.
    """

    def __init__(self, connector: Connector):
        self.connector = connector

    def __enter__(self):
        try:
            self.connector.connect()
            logger.debug("Connected to %s" % (self.connector.endpoint,))
        except ConnectorError as e:
            logger.error("Unable to connect to %s - %s" % (self.connector.endpoint, e))
            raise
        return self.connector.conduit

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.debug("Disconnected from %s" % (self.connector.endpoint,))
        self.connector.disconnect()
