"""Function signatures and selectors of the keyring account's external entry points."""

from ..abi import function_selector

EXECUTE = "execute(address,uint256,bytes)"
EXECUTE_BATCH = "executeBatch((address,uint256,bytes)[])"
EXECUTE_WITHOUT_CHAIN_ID_VALIDATION = "executeWithoutChainIdValidation(bytes[])"
INITIALIZE = "initialize((uint256,uint8)[])"
ADD_OWNER = "addOwner(uint256,uint8)"
REMOVE_OWNER = "removeOwner(uint256)"
REMOVE_LAST_OWNER = "removeLastOwner(uint256)"
UPGRADE_TO_AND_CALL = "upgradeToAndCall(address,bytes)"

EXECUTE_SELECTOR = function_selector(EXECUTE)
EXECUTE_BATCH_SELECTOR = function_selector(EXECUTE_BATCH)
EXECUTE_WITHOUT_CHAIN_ID_VALIDATION_SELECTOR = function_selector(EXECUTE_WITHOUT_CHAIN_ID_VALIDATION)
INITIALIZE_SELECTOR = function_selector(INITIALIZE)
ADD_OWNER_SELECTOR = function_selector(ADD_OWNER)
REMOVE_OWNER_SELECTOR = function_selector(REMOVE_OWNER)
REMOVE_LAST_OWNER_SELECTOR = function_selector(REMOVE_LAST_OWNER)
UPGRADE_TO_AND_CALL_SELECTOR = function_selector(UPGRADE_TO_AND_CALL)
