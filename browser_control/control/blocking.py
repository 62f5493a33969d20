"""Detect page elements that only a human can get past (CAPTCHA, login, OTP, required modal)."""

import logging
from typing import TYPE_CHECKING

from browser_control.control.views import BlockingElement

if TYPE_CHECKING:
	from browser_control.browser.connection import ConnectionManager

logger = logging.getLogger(__name__)

BLOCKING_DETECTION_JS = """(function() {
	const isShown = (el) => el.offsetParent !== null;

	const captchaSelectors = [
		'iframe[src*="recaptcha"]',
		'iframe[src*="hcaptcha"]',
		'[class*="captcha"]',
		'[id*="captcha"]',
		'.g-recaptcha',
		'.h-captcha'
	];
	for (const selector of captchaSelectors) {
		if (document.querySelector(selector)) {
			return { type: 'captcha', message: 'A CAPTCHA was detected. Please solve it, then press Continue.' };
		}
	}

	const passwordSelectors = [
		'[type="password"]:not([style*="display: none"])',
		'input[name*="password"]:not([style*="display: none"])',
		'input[autocomplete="current-password"]'
	];
	for (const selector of passwordSelectors) {
		const field = document.querySelector(selector);
		if (field && isShown(field)) {
			return { type: 'password', message: 'A password field was detected. Please log in, then press Continue.' };
		}
	}

	const modalSelectors = [
		'[role="dialog"][aria-modal="true"]',
		'.modal[style*="display: block"]',
		'[class*="popup"][style*="display: block"]'
	];
	for (const selector of modalSelectors) {
		const modal = document.querySelector(selector);
		if (modal && isShown(modal) && modal.querySelector('button[required], input[required]')) {
			return { type: 'modal', message: 'A dialog needs your input. Please complete it, then press Continue.' };
		}
	}

	const otpSelectors = [
		'input[type="text"][maxlength="6"]',
		'input[autocomplete="one-time-code"]',
		'input[name*="otp"]',
		'input[name*="code"]'
	];
	for (const selector of otpSelectors) {
		const field = document.querySelector(selector);
		if (field && isShown(field)) {
			return { type: 'otp', message: 'A verification code is required. Please enter it, then press Continue.' };
		}
	}

	return null;
})()"""


async def detect_blocking_elements(connection: 'ConnectionManager') -> BlockingElement | None:
	"""Scan the attached page. Detection failures are logged and treated as "nothing found"."""
	if not connection.attached:
		return None

	try:
		result = await connection.call('Runtime.evaluate', {'expression': BLOCKING_DETECTION_JS, 'returnByValue': True})
	except Exception as e:
		logger.debug(f'Blocking element detection failed: {type(e).__name__}: {e}')
		return None

	value = result.get('result', {}).get('value')
	if not value:
		return None

	logger.info(f'🚧 Blocking element detected: {value.get("type")}')
	return BlockingElement(type=value['type'], message=value.get('message', ''))
