"""rerank_qa.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration sections
used to wire the advisor pipeline.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time, so credentials such as the reranker API key can
be kept out of the file.

Example
-------
.. code-block:: yaml

    advisor:
      api_key: ${COHERE_API_KEY}
      relevancy_threshold: 0.7
    data_sources:
      docs:
        type: vector_index
        persist_dir: ./storage/docs
    chat_model:
      type: openai_chat
      model_name: gpt-4o-mini

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.
"""

import os
import yaml
from pathlib import Path
from functools import cached_property

def _expand_env(obj):
    """Recursively expand environment variables in a nested structure.

    This function walks nested dictionaries and lists and applies
    :func:`os.path.expandvars` to any string values, expanding patterns of the
    form ``${VAR}`` using the current process environment.

    Parameters
    ----------
    obj : Any
        Object to expand. Supported types are dictionaries, lists, and strings.
        Other types are returned unchanged.

    Returns
    -------
    Any
        A structure of the same shape as ``obj`` with environment variables
        expanded in all string values.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj

class GlobalConfig:
    """Loader and accessor for global project configuration.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path to the loaded file, used to resolve relative paths
        (e.g., ``persist_dir``).
    """

    def __init__(
            self,
            raw: dict,
            config_path: Path | None = None,
        ):
        self.raw = raw or {}
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        GlobalConfig
            An instance initialised with the loaded and environment-expanded data.
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f)
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    @property
    def base_dir(self) -> Path | None:
        """Return the directory of the loaded file, or ``None`` if unknown."""
        if self.config_path is None:
            return None
        return Path(self.config_path).expanduser().resolve().parent

    def _optional_section(self, key: str) -> dict:
        section = self.raw.get(key)
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise TypeError(f"'{key}' must be a mapping, got {type(section)}.")
        return section

    @cached_property
    def advisor(self) -> dict:
        """Return the rerank-QA advisor configuration section.

        Returns
        -------
        dict
            The ``advisor`` section, or an empty dict if not present.

        Raises
        ------
        TypeError
            If ``advisor`` is not a mapping.
        """
        return self._optional_section("advisor")

    @cached_property
    def reranker(self) -> dict:
        """Return the reranker configuration section.

        Returns
        -------
        dict
            The ``reranker`` section, or an empty dict if not present.

        Raises
        ------
        TypeError
            If ``reranker`` is not a mapping.
        """
        return self._optional_section("reranker")

    @cached_property
    def data_sources(self) -> dict[str, dict]:
        """Return the data-source configuration.

        Returns
        -------
        dict[str, dict]
            Mapping of source name to data-source config.

        Raises
        ------
        KeyError
            If ``data_sources`` is missing from configuration.
        TypeError
            If ``data_sources`` is not a mapping, contains invalid source names,
            or any source config is not a mapping.
        ValueError
            If ``data_sources`` is empty.
        """
        sources = self.raw.get("data_sources")
        if sources is None:
            raise KeyError("Missing 'data_sources' in configuration.")
        if not isinstance(sources, dict):
            raise TypeError("'data_sources' must be a mapping of source_name -> config.")
        if not sources:
            raise ValueError("'data_sources' must define at least one source.")

        normalised: dict[str, dict] = {}
        for source_name, source_cfg in sources.items():
            if not isinstance(source_name, str) or not source_name.strip():
                raise TypeError("Each 'data_sources' key must be a non-empty string.")
            if not isinstance(source_cfg, dict):
                raise TypeError(
                    f"'data_sources.{source_name}' must be a mapping, got {type(source_cfg)}."
                )
            normalised[source_name] = source_cfg

        return normalised

    @cached_property
    def chat_model(self) -> dict:
        """Return the chat model configuration section.

        Returns
        -------
        dict
            The ``chat_model`` section of the configuration.

        Raises
        ------
        KeyError
            If ``chat_model`` is missing from configuration.
        """
        section = self.raw.get("chat_model")
        if section is None:
            raise KeyError("Missing 'chat_model' in configuration.")
        return section

    @cached_property
    def system_text(self) -> str | None:
        """Return the default system message, or ``None`` if not configured."""
        return self.raw.get("system_text")
