import logging
from typing import Any

from browser_control.actions.base import BaseActionHandler

logger = logging.getLogger(__name__)


def _key(code: int, key: str, dom_code: str | None = None, text: str | None = None) -> dict[str, Any]:
	definition: dict[str, Any] = {
		'windowsVirtualKeyCode': code,
		'nativeVirtualKeyCode': code,
		'key': key,
		'code': dom_code or key,
	}
	if text is not None:
		definition['text'] = text
	return definition


KEY_DEFINITIONS: dict[str, dict[str, Any]] = {
	'Enter': _key(13, 'Enter', text='\r'),
	'Backspace': _key(8, 'Backspace'),
	'Tab': _key(9, 'Tab'),
	'Escape': _key(27, 'Escape'),
	'Delete': _key(46, 'Delete'),
	'ArrowDown': _key(40, 'ArrowDown'),
	'ArrowUp': _key(38, 'ArrowUp'),
	'ArrowLeft': _key(37, 'ArrowLeft'),
	'ArrowRight': _key(39, 'ArrowRight'),
	'PageUp': _key(33, 'PageUp'),
	'PageDown': _key(34, 'PageDown'),
	'End': _key(35, 'End'),
	'Home': _key(36, 'Home'),
	'Space': _key(32, ' ', dom_code='Space', text=' '),
}

# Native value setters bypass framework-tracked properties (React, Vue)
_FILL_JS = """function(val) {
	this.focus();

	const tagName = this.tagName;
	const isSelect = tagName === 'SELECT';

	const setSelectedIndex = (select, i) => {
		try {
			const nativeSetter = Object.getOwnPropertyDescriptor(window.HTMLSelectElement.prototype, 'selectedIndex').set;
			nativeSetter.call(select, i);
		} catch (e) {
			select.selectedIndex = i;
		}
	};

	if (isSelect) {
		let found = false;
		for (let i = 0; i < this.options.length; i++) {
			if (this.options[i].value === val) {
				setSelectedIndex(this, i);
				found = true;
				break;
			}
		}
		if (!found) {
			for (let i = 0; i < this.options.length; i++) {
				if (this.options[i].text === val) {
					setSelectedIndex(this, i);
					found = true;
					break;
				}
			}
		}
		if (!found) {
			try {
				const nativeSetter = Object.getOwnPropertyDescriptor(window.HTMLSelectElement.prototype, 'value').set;
				nativeSetter.call(this, val);
			} catch (e) {
				this.value = val;
			}
		}
	} else if (this.isContentEditable) {
		document.execCommand('selectAll', false, null);
		document.execCommand('insertText', false, val);
		if (this.innerText !== val && val !== '') {
			this.innerText = val;
		}
	} else {
		const proto = tagName === 'TEXTAREA' ? window.HTMLTextAreaElement.prototype : window.HTMLInputElement.prototype;
		try {
			Object.getOwnPropertyDescriptor(proto, 'value').set.call(this, val);
		} catch (e) {
			this.value = val;
		}
	}

	this.dispatchEvent(new Event('input', { bubbles: true, composed: true }));
	this.dispatchEvent(new Event('change', { bubbles: true, composed: true }));
	if (isSelect) {
		this.dispatchEvent(new Event('click', { bubbles: true, composed: true }));
	}
}"""


class KeyboardActions(BaseActionHandler):
	async def fill(self, uid: str, value: str) -> str:
		"""Set the value of an input, textarea, select or contenteditable element."""
		object_id = await self.get_object_id(uid)

		async def run() -> None:
			await self.cmd(
				'Runtime.callFunctionOn',
				{'objectId': object_id, 'functionDeclaration': _FILL_JS, 'arguments': [{'value': value}]},
			)

		await self.wait.execute(run)
		logger.debug(f'⌨️ Filled {uid} with {len(value)} chars')
		return f'Filled element {uid}'

	async def fill_form(self, elements: list[dict[str, str]]) -> str:
		"""Fill several elements in order. Stops at the first failure."""
		results = []
		for element in elements:
			results.append(await self.fill(element['uid'], element['value']))
		return '\n'.join(results) if results else 'No elements to fill.'

	async def press_key(self, key: str) -> str:
		async def run() -> None:
			definition = KEY_DEFINITIONS.get(key)
			if definition is not None:
				await self.cmd('Input.dispatchKeyEvent', {'type': 'keyDown', **definition})
				await self.cmd('Input.dispatchKeyEvent', {'type': 'keyUp', **definition})
			elif len(key) == 1:
				await self.cmd('Input.dispatchKeyEvent', {'type': 'keyDown', 'text': key, 'key': key})
				await self.cmd('Input.dispatchKeyEvent', {'type': 'keyUp', 'text': key, 'key': key})
			else:
				raise ValueError(f"Key '{key}' not supported.")

		try:
			await self.wait.execute(run)
			return f'Pressed key: {key}'
		except Exception as e:
			return f'Error pressing key {key}: {e}'
