"""Connection health probing and recovery for the attached debugger session."""

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from browser_control.utils import short_id

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager

logger = logging.getLogger(__name__)


class ConnectionHealthMonitor:
	"""Probes the attached session and re-attaches when it stops answering."""

	def __init__(self, connection: 'ConnectionManager', max_consecutive_failures: int = 3, stale_after: float = 30.0):
		self.connection = connection
		self.last_successful_request = time.time()
		self.consecutive_failures = 0
		self.max_consecutive_failures = max_consecutive_failures
		self.stale_after = stale_after

	async def check_connection_health(self) -> bool:
		"""Check if the session is healthy by evaluating `1 + 1` in the page.

		Returns:
			True if connection is healthy, False if broken
		"""
		if not self.connection.attached:
			logger.debug('🔍 No attached session available for health check')
			return False

		try:
			test_result = await asyncio.wait_for(
				self.connection.call('Runtime.evaluate', {'expression': '1 + 1', 'returnByValue': True}),
				timeout=2.0,
			)
		except asyncio.TimeoutError:
			self.consecutive_failures += 1
			logger.warning(f'⏱️ Connection health check timed out (failures: {self.consecutive_failures})')
			return False
		except Exception as e:
			self.consecutive_failures += 1
			logger.warning(f'❌ Connection health check failed: {e} (failures: {self.consecutive_failures})')
			return False

		if test_result.get('result', {}).get('value') == 2:
			self.last_successful_request = time.time()
			self.consecutive_failures = 0
			logger.debug('✅ Connection health check passed')
			return True

		self.consecutive_failures += 1
		logger.debug('❌ Connection health check failed - unexpected result')
		return False

	async def is_connection_broken(self) -> bool:
		"""Determine if the connection is broken and needs recovery."""
		if await self.check_connection_health():
			return False

		if self.consecutive_failures >= self.max_consecutive_failures:
			logger.warning(f'🚨 Connection appears broken after {self.consecutive_failures} failures')
			return True

		time_since_success = time.time() - self.last_successful_request
		if time_since_success > self.stale_after:
			logger.warning(f'🚨 Connection appears broken - no success for {time_since_success:.1f}s')
			return True

		return False

	async def attempt_connection_recovery(self) -> bool:
		"""Drop the session and attach to the intended target again.

		Returns:
			True if recovery was successful, False if failed
		"""
		target_id = self.connection.target_id or self.connection.current_target_id
		if not target_id:
			logger.warning('❌ Connection recovery impossible, no target recorded')
			return False

		logger.info(f'🔧 Attempting connection recovery on {short_id(target_id)}...')
		try:
			await self.connection.detach()
			await self.connection.attach(target_id)
		except Exception as e:
			logger.error(f'❌ Connection recovery failed with error: {type(e).__name__}: {e}')
			return False

		if await self.check_connection_health():
			logger.info('✅ Connection recovery successful')
			return True

		logger.warning('❌ Connection recovery failed')
		return False
