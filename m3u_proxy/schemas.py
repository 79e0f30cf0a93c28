from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class FilterRule(BaseModel):
    """Keep a record when ``pattern`` matches the value of ``field``"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: str = Field(..., min_length=1, description="Record field to test (e.g. 'group-title')")
    pattern: str = Field(
        ...,
        validation_alias=AliasChoices("pattern", "regex"),
        description="Case-insensitive regular expression",
    )


class TransformationRule(BaseModel):
    """Rewrite the first match of ``pattern`` in ``field`` with ``replacement``"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: str = Field(..., min_length=1, description="Record field to rewrite")
    pattern: str = Field(
        ...,
        validation_alias=AliasChoices("pattern", "regex"),
        description="Case-insensitive regular expression",
    )
    replacement: str = Field(
        "",
        validation_alias=AliasChoices("replacement", "substitution"),
        description="Substitution template",
    )


class Model(BaseModel):
    """One output playlist variant of a source"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field("", description="Suffix appended to the source name for the output file")
    filters: list[FilterRule] | None = None
    transformations: list[TransformationRule] | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Model names end up in file names"""
        if "/" in v or "\\" in v:
            raise ValueError(f"Model name must not contain path separators: {v!r}")
        return v


class Source(BaseModel):
    """One playlist origin, its optional guide and its models"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    m3u: str = Field(..., description="M3U origin URL")
    epg: str | None = Field(None, description="XMLTV origin URL")
    epg_model: str | None = Field(
        None,
        validation_alias=AliasChoices("epg_model", "epgModel"),
        description="Model whose retained tvg-ids scope the EPG output (defaults to the first model)",
    )
    models: list[Model] = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Source names end up in file names"""
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"Source name must be a plain file name: {v!r}")
        return v

    @field_validator("m3u", "epg")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate origin URLs are HTTP/HTTPS"""
        if v is not None and not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"Source URL must be HTTP/HTTPS: {v}")
        return v

    @model_validator(mode='after')
    def validate_models(self):
        """Model names must be unique and epg_model must name one of them"""
        names = [model.name for model in self.models]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate model names in source '{self.name}': {duplicates}")

        if self.epg_model is not None and self.epg_model not in names:
            raise ValueError(
                f"epg_model '{self.epg_model}' is not a model of source '{self.name}'"
            )
        return self

    def get_epg_model(self) -> Model:
        """Return the model designated for EPG channel-id extraction"""
        if self.epg_model is None:
            return self.models[0]
        return next(model for model in self.models if model.name == self.epg_model)


class ProxyConfig(BaseModel):
    """Top-level proxy configuration file"""
    model_config = ConfigDict(populate_by_name=True)

    import_folder: str = Field(
        ...,
        validation_alias=AliasChoices("import_folder", "importFolder"),
        description="Where downloaded inputs are stored",
    )
    export_folder: str = Field(
        ...,
        validation_alias=AliasChoices("export_folder", "exportFolder"),
        description="Where generated playlists and guides are written",
    )
    sources: list[Source] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_sources(self):
        """Source names must be unique"""
        names = [source.name for source in self.sources]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source names: {duplicates}")
        return self

    def import_m3u_path(self, source: Source) -> Path:
        return Path(f"{self.import_folder}/{source.name}.m3u")

    def import_epg_path(self, source: Source) -> Path:
        return Path(f"{self.import_folder}/{source.name}.xml")

    def export_m3u_path(self, source: Source, model: Model) -> Path:
        return Path(f"{self.export_folder}/{source.name}{model.name}.m3u")

    def export_epg_path(self, source: Source) -> Path:
        return Path(f"{self.export_folder}/{source.name}.xml")

    def export_filenames(self) -> set[str]:
        """File names (relative to the export folder) this config produces"""
        names = set()
        for source in self.sources:
            names.update(f"{source.name}{model.name}.m3u" for model in source.models)
            if source.epg:
                names.add(f"{source.name}.xml")
        return names
